from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from . import config


class Provenance(Enum):
    """Where a description was read from."""
    SIDECAR = 'sidecar'
    EMBEDDED_PNG = 'embedded-png'
    EMBEDDED_JPEG_COMMENT = 'embedded-jpeg-comment'
    EMBEDDED_EXIF = 'embedded-exif'


# Sidecar JSON key <-> dataclass attribute
_JSON_FIELDS = {
    'description': 'description',
    'tags': 'tags',
    'modelUsed': 'model_used',
    'fileHash': 'file_hash',
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'originalMetadata': 'original_metadata',
}
_ATTR_TO_JSON = {attr: key for key, attr in _JSON_FIELDS.items()}

# Superseded by named segments; accepted on input, never written
LEGACY_KEYS = {'presetName', 'preset_name'}


def normalize_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Maps snake_case attribute names onto sidecar JSON keys, drops legacy keys."""
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in LEGACY_KEYS:
            continue
        out[_ATTR_TO_JSON.get(key, key)] = value
    return out


@dataclass
class DescriptionRecord:
    """
    Authoritative description of one media file, stored at
    `<file>.desc.json`.
    """
    description: str = ''
    tags: str = ''
    model_used: Optional[str] = None
    file_hash: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    original_metadata: Optional[Dict[str, Any]] = None

    # Keys we don't model, kept so a rewrite never loses them
    extra: Dict[str, Any] = field(default_factory=dict)
    source: Provenance = Provenance.SIDECAR

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> 'DescriptionRecord':
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in normalize_fields(data).items():
            if key in _JSON_FIELDS:
                kwargs[_JSON_FIELDS[key]] = value
            else:
                extra[key] = value
        if kwargs.get('description') is None:
            kwargs['description'] = ''
        if kwargs.get('tags') is None:
            kwargs['tags'] = ''
        return cls(extra=extra, **kwargs)

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        for key, attr in _JSON_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data


@dataclass
class EmbeddedMetadata:
    """
    Read-only view of a description found inside a PNG/JPEG that has no
    sidecar. Never persisted on its own.
    """
    preset_name: str
    description: str
    source: Provenance
    tags: str = ''
    original_metadata: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {
            'description': self.description,
            'tags': self.tags,
            'originalMetadata': self.original_metadata,
        }


@dataclass
class MediaFile:
    path: Path

    @property
    def ext(self) -> str:
        return self.path.suffix.lower()

    @property
    def mime_type(self) -> str:
        return config.MIME_MAP.get(self.ext, config.DEFAULT_MIME)

    @property
    def category(self) -> str:
        return config.EXT_TO_CATEGORY.get(self.ext, 'unsupported')

    @property
    def is_base64_sendable(self) -> bool:
        return self.ext in config.BASE64_SENDABLE_EXTS


@dataclass
class ScanResult:
    text_files: List[str] = field(default_factory=list)
    multimedia_files: List[str] = field(default_factory=list)


@dataclass
class ReconciliationResult:
    reconciled: List[Tuple[str, str]] = field(default_factory=list)  # (old_name, new_name)
    orphaned: List[str] = field(default_factory=list)                # sidecar file names


@dataclass
class FileEntry:
    """One row of a diary listing."""
    name: str
    type: str               # text/image/video/audio/pdf/unsupported
    has_description: bool = False
    preset_name: Optional[str] = None
    has_tags: bool = False

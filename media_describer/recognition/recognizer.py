import base64
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Tuple, Union

from tqdm import tqdm

from .. import config
from ..exceptions import PersistenceError, RecognitionError
from ..metadata.segments import merge_tags, parse_segments, upsert_segment
from ..metadata.store import SidecarStore
from ..models import DescriptionRecord, EmbeddedMetadata, MediaFile
from ..scanning.filesystem import DirectoryScanner

_TAG_LINE_RE = re.compile(r'^Tags?:\s*', re.IGNORECASE)


class RecognitionBackend(Protocol):
    """
    Describes one file with a vision-capable model.

    Returns (description_text, tags_text); raises RecognitionError on failure.
    """
    def __call__(self, path: Path, preset_name: str) -> Tuple[str, str]: ...


def parse_model_response(response: str) -> Tuple[str, str]:
    """
    Splits a model reply into (description, tags). The last line starting
    with 'Tag:' / 'Tags:' holds the tags; everything above it is the
    description. Without such a line the whole reply is the description.
    """
    lines = response.strip().split('\n')
    for i in range(len(lines) - 1, -1, -1):
        line = lines[i].strip()
        if _TAG_LINE_RE.match(line):
            tags = _TAG_LINE_RE.sub('', line).strip()
            return '\n'.join(lines[:i]).strip(), tags
    return '\n'.join(lines).strip(), ''


def read_as_data_uri(path: Path) -> str:
    media = MediaFile(Path(path))
    encoded = base64.b64encode(Path(path).read_bytes()).decode('ascii')
    return f"data:{media.mime_type};base64,{encoded}"


def build_image_content_part(path: Path) -> Dict[str, Any]:
    """OpenAI-style `image_url` content part for a multimodal message."""
    return {
        'type': 'image_url',
        'image_url': {
            'url': read_as_data_uri(path),
            'filePath': str(path),
        },
    }


class MediaRecognizer:
    """
    Merges recognition results into a file's description: the text goes
    into the segment named after the preset, tags are merged.
    """

    def __init__(self, store: SidecarStore, backend: RecognitionBackend, model_name: Optional[str] = None):
        self.store = store
        self.backend = backend
        self.model_name = model_name

    def recognize(self,
                  path: Path,
                  preset_name: str = config.DEFAULT_PRESET,
                  force: bool = False) -> Optional[Union[DescriptionRecord, EmbeddedMetadata]]:
        """
        Returns the written record, the existing record when the preset's
        segment is already filled (and not `force`), or None on failure.
        """
        path = Path(path)
        preset = preset_name[1:] if preset_name.startswith('@') else preset_name

        existing = self.store.read(path)
        if not force and preset in parse_segments(existing.description if existing else ''):
            logging.debug(f"Preset {preset} already described, skipping: {path.name}")
            return existing

        if not MediaFile(path).is_base64_sendable:
            logging.warning(f"File type not supported for recognition: {path.name}")
            return None

        logging.info(f"Recognizing {path.name} (preset: {preset})")
        try:
            text, tags = self.backend(path, preset)
        except RecognitionError as e:
            logging.error(f"Recognition failed for {path.name}: {e}")
            return None

        # Re-read: the file may have been edited while the model was busy
        latest = self.store.read(path)
        fields: Dict[str, Any] = latest.to_json() if latest else {}
        fields['description'] = upsert_segment(fields.get('description'), preset, text)
        fields['tags'] = merge_tags(fields.get('tags'), tags)
        fields['modelUsed'] = self.model_name or preset

        try:
            record = self.store.write(path, fields)
        except PersistenceError as e:
            logging.error(f"Could not save description for {path.name}: {e}")
            return None

        logging.info(f"Description written: {path.name} ({len(text)} chars, {len([t for t in tags.split(',') if t.strip()])} tags)")
        return record

    def recognize_batch(self,
                        directory: Path,
                        preset_name: str = config.DEFAULT_PRESET,
                        force: bool = False,
                        names: Iterable[str] = ()) -> Dict[str, Union[DescriptionRecord, EmbeddedMetadata]]:
        """Recognizes every multimedia file in `directory` (or just `names`)."""
        directory = Path(directory)
        files = DirectoryScanner().scan_directory(directory).multimedia_files
        wanted = set(names)
        if wanted:
            files = [f for f in files if f in wanted]

        results: Dict[str, Union[DescriptionRecord, EmbeddedMetadata]] = {}
        for name in tqdm(files, desc="Recognizing"):
            record = self.recognize(directory / name, preset_name, force)
            if record:
                results[name] = record
        return results

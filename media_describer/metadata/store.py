import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .. import config
from ..exceptions import MirrorWriteError, PersistenceError
from ..models import DescriptionRecord, EmbeddedMetadata, normalize_fields
from ..scanning.hasher import FileHasher
from .embedded import EmbeddedMetadataMirror

RecordInput = Union[DescriptionRecord, EmbeddedMetadata, Mapping[str, Any]]


def sidecar_path(path: Path) -> Path:
    return path.with_name(path.name + config.SIDECAR_SUFFIX)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class SidecarStore:
    """
    CRUD over `<file>.desc.json`.

    The sidecar is the source of truth. For PNG/JPEG every successful write
    is followed by a best-effort copy of the description text into the file
    itself; a failure there is logged and never undoes the sidecar write.
    """

    def __init__(self, mirror: Optional[EmbeddedMetadataMirror] = None, hasher: Optional[FileHasher] = None):
        self.mirror = mirror or EmbeddedMetadataMirror()
        self.hasher = hasher or FileHasher()
        # media path -> (sidecar mtime_ns, parsed JSON)
        self._cache: Dict[Path, Tuple[int, Dict[str, Any]]] = {}
        self._cache_lock = threading.Lock()

    # --- Read ---

    def read(self, path: Path) -> Optional[Union[DescriptionRecord, EmbeddedMetadata]]:
        """
        Sidecar record if present, else whatever PNG/JPEG carries inside
        (not persisted), else None.
        """
        path = Path(path)
        try:
            data = self._load_json(path)
        except FileNotFoundError:
            return self.mirror.read(path)
        except (OSError, ValueError) as e:
            logging.error(f"Failed to read description file {sidecar_path(path)}: {e}")
            return None
        return DescriptionRecord.from_json(data)

    def read_sidecar(self, path: Path) -> Optional[DescriptionRecord]:
        """Sidecar record only; no embedded fallback."""
        record = self.read(path)
        return record if isinstance(record, DescriptionRecord) else None

    def _load_json(self, path: Path) -> Dict[str, Any]:
        desc_path = sidecar_path(path)
        mtime = desc_path.stat().st_mtime_ns

        with self._cache_lock:
            cached = self._cache.get(path)
        if cached and cached[0] == mtime:
            return dict(cached[1])

        with open(desc_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("description file does not hold a JSON object")

        with self._cache_lock:
            self._cache[path] = (mtime, data)
        return dict(data)

    def invalidate(self, path: Path):
        with self._cache_lock:
            self._cache.pop(Path(path), None)

    # --- Write ---

    def write(self, path: Path, record: RecordInput) -> DescriptionRecord:
        """
        Merges `record` over the existing sidecar and saves it.

        Raises PersistenceError if the sidecar cannot be written.
        """
        path = Path(path)
        desc_path = sidecar_path(path)

        data = self._existing_json(path)
        data.update(self._incoming_fields(record))
        data = normalize_fields(data)

        data['updatedAt'] = _now_iso()
        if not data.get('createdAt'):
            data['createdAt'] = data['updatedAt']

        # Unreadable media keeps whatever hash we had before
        try:
            data['fileHash'] = self.hasher.compute_hash(path)
        except OSError as e:
            logging.debug(f"Could not hash {path}, keeping previous hash: {e}")

        self._dump(desc_path, data)
        self.invalidate(path)

        if self._mirror_write(path, data.get('description') or ''):
            self._refresh_hash(path, data)
        return DescriptionRecord.from_json(data)

    def _dump(self, desc_path: Path, data: Dict[str, Any]):
        """Serializes fully, then replaces the sidecar atomically."""
        try:
            payload = json.dumps(data, ensure_ascii=False, indent=2).encode('utf-8')
        except (TypeError, ValueError, UnicodeError) as e:
            raise PersistenceError(f"Cannot serialize description for {desc_path}: {e}") from e

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(dir=desc_path.parent, prefix=f'.{desc_path.name}.',
                                             suffix='.tmp', delete=False) as temp_file:
                temp_path = Path(temp_file.name)
                temp_file.write(payload)
            os.replace(temp_path, desc_path)
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write description file {desc_path}: {e}") from e

    def _refresh_hash(self, path: Path, data: Dict[str, Any]):
        """Re-records the hash after the mirror write changed the file's bytes."""
        try:
            data['fileHash'] = self.hasher.compute_hash(path)
            self._dump(sidecar_path(path), data)
        except (OSError, PersistenceError) as e:
            logging.warning(f"Could not refresh file hash for {path}: {e}")
        finally:
            self.invalidate(path)

    def _existing_json(self, path: Path) -> Dict[str, Any]:
        try:
            return self._load_json(path)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logging.warning(f"Ignoring unreadable description file {sidecar_path(path)}: {e}")
            return {}

    def _incoming_fields(self, record: RecordInput) -> Dict[str, Any]:
        if isinstance(record, (DescriptionRecord, EmbeddedMetadata)):
            fields = record.to_json()
        else:
            fields = normalize_fields(record)
        # Timestamps are owned by the store
        fields.pop('updatedAt', None)
        fields.pop('createdAt', None)
        return fields

    def _mirror_write(self, path: Path, text: str) -> bool:
        if not self.mirror.supports(path):
            return False
        try:
            return self.mirror.write(path, text)
        except MirrorWriteError as e:
            logging.warning(f"Embedded metadata write failed for {path}: {e}")
            return False

    # --- Delete ---

    def delete(self, path: Path) -> bool:
        """Removes the sidecar. Returns False if there was none."""
        path = Path(path)
        self.invalidate(path)
        desc_path = sidecar_path(path)
        try:
            desc_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to delete description file {desc_path}: {e}") from e
        return True

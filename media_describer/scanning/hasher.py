import hashlib
from pathlib import Path

from .. import config


class FileHasher:
    """
    Whole-file SHA-256 fingerprints.

    The digest recorded in a sidecar is compared byte-for-byte against
    candidate files during reconciliation, so it must always cover the
    full content.
    """

    def compute_hash(self, path: Path) -> str:
        """Reads entire file in chunks. Raises OSError if unreadable."""
        h = hashlib.sha256()
        with open(path, 'rb') as f:
            while chunk := f.read(config.HASH_CHUNK_SIZE):
                h.update(chunk)
        return h.hexdigest()


def read_bytes(path: Path) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def write_bytes(path: Path, data: bytes) -> None:
    with open(path, 'wb') as f:
        f.write(data)

import logging
import shutil
from pathlib import Path

from ..exceptions import FileOperationError
from ..metadata.store import SidecarStore, sidecar_path


class MediaMover:
    """
    Renames or moves a media file together with its description sidecar,
    so the pair never needs reconciling.
    """

    def __init__(self, store: SidecarStore):
        self.store = store

    def rename(self, directory: Path, name: str, new_name: str) -> Path:
        directory = Path(directory)
        return self._relocate(directory / name, directory / new_name)

    def move(self, src_dir: Path, name: str, dest_dir: Path) -> Path:
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        return self._relocate(Path(src_dir) / name, dest_dir / name)

    def _relocate(self, src: Path, dest: Path) -> Path:
        if dest.exists():
            raise FileOperationError(f"Target already exists: {dest}")

        try:
            shutil.move(str(src), str(dest))
        except OSError as e:
            raise FileOperationError(f"Failed to move {src} -> {dest}: {e}") from e

        src_desc = sidecar_path(src)
        if src_desc.exists():
            try:
                shutil.move(str(src_desc), str(sidecar_path(dest)))
            except OSError as e:
                raise FileOperationError(f"Moved {src} but not its description file: {e}") from e
            finally:
                self.store.invalidate(src)
                self.store.invalidate(dest)

        logging.info(f"Moved {src} -> {dest}")
        return dest

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from . import config
from .exceptions import RecognitionError
from .metadata.segments import join_tags, render_description, split_tags
from .metadata.store import SidecarStore
from .models import DescriptionRecord, EmbeddedMetadata, FileEntry, MediaFile, ReconciliationResult
from .organization.mover import MediaMover
from .organization.reconciler import SidecarReconciler
from .recognition.recognizer import MediaRecognizer, RecognitionBackend
from .scanning.filesystem import DirectoryScanner, should_ignore


class KnowledgeMediaLibrary:
    """
    Descriptions for the media files of a knowledge base laid out as
    `<root>/<diary>/<file>`.

    This is the entry point host surfaces (admin panel, tool calls, prompt
    assembly) talk to.
    """

    def __init__(self,
                 root: Optional[Path] = None,
                 backend: Optional[RecognitionBackend] = None,
                 model_name: Optional[str] = None,
                 max_workers: int = 1):
        self.root = Path(root) if root else config.knowledge_root()
        self.store = SidecarStore()
        self.scanner = DirectoryScanner()
        self.reconciler = SidecarReconciler(self.scanner, self.store.hasher)
        self.mover = MediaMover(self.store)
        self.recognizer = MediaRecognizer(self.store, backend, model_name) if backend else None
        self.max_workers = max_workers

    def _diary_dir(self, diary: str) -> Path:
        return self.root / diary

    def _file_path(self, diary: str, name: str) -> Path:
        return self.root / diary / name

    # --- Listing ---

    def list_diaries(self) -> List[str]:
        try:
            with os.scandir(self.root) as it:
                return sorted(e.name for e in it if e.is_dir() and not should_ignore(e.name))
        except FileNotFoundError:
            logging.warning(f"Knowledge base root not found: {self.root}")
            return []

    def list_files(self, diary: str) -> List[FileEntry]:
        """
        Text and multimedia files of a diary with their description status.
        Orphaned sidecars are reconciled first.
        """
        directory = self._diary_dir(diary)

        try:
            result = self.reconciler.reconcile(directory, max_workers=self.max_workers)
            if result.reconciled:
                pairs = ', '.join(f"{old} -> {new}" for old, new in result.reconciled)
                logging.info(f"Reconciled {len(result.reconciled)} orphaned description file(s): {pairs}")
        except OSError as e:
            # Listing still works without reconciliation
            logging.warning(f"Reconciliation failed for {directory}: {e}")

        scan = self.scanner.scan_directory(directory)
        files = [FileEntry(name=n, type='text') for n in scan.text_files]
        for name in scan.multimedia_files:
            desc = self.store.read(directory / name)
            files.append(FileEntry(
                name=name,
                type=MediaFile(directory / name).category,
                has_description=bool(desc and desc.description),
                preset_name=desc.preset_name if isinstance(desc, EmbeddedMetadata) else None,
                has_tags=bool(desc and desc.tags and desc.tags.strip()),
            ))
        return files

    def read_text(self, diary: str) -> str:
        directory = self._diary_dir(diary)
        return self.scanner.read_text_files(directory, self.scanner.scan_directory(directory).text_files)

    # --- Descriptions ---

    def get_description(self, diary: str, name: str) -> Optional[Union[DescriptionRecord, EmbeddedMetadata]]:
        return self.store.read(self._file_path(diary, name))

    def set_description(self, diary: str, name: str, description: str = '', tags: str = '') -> DescriptionRecord:
        """Manual edit: replaces the whole description text and tags."""
        return self.store.write(self._file_path(diary, name), {
            'description': description,
            'tags': tags,
            'modelUsed': config.MANUAL_EDIT_MODEL,
        })

    def update_tags(self, diary: str, name: str, mode: str, tags: str) -> Dict[str, str]:
        """
        mode: 'replace' (default for unknown modes), 'append' (skip
        duplicates) or 'remove'.
        """
        path = self._file_path(diary, name)
        existing = self.store.read(path)
        current = split_tags(existing.tags if existing else '')
        incoming = split_tags(tags)

        if mode == 'append':
            new_tags = current + [t for t in incoming if t not in current]
        elif mode == 'remove':
            new_tags = [t for t in current if t not in incoming]
        else:
            new_tags = incoming

        fields = existing.to_json() if existing else {}
        fields['tags'] = join_tags(new_tags)
        fields['modelUsed'] = fields.get('modelUsed') or config.MANUAL_EDIT_MODEL
        self.store.write(path, fields)

        return {
            'diary': diary,
            'file': name,
            'mode': mode,
            'previousTags': join_tags(current),
            'currentTags': fields['tags'],
        }

    def delete_description(self, diary: str, name: str) -> bool:
        return self.store.delete(self._file_path(diary, name))

    def render(self,
               diary: str,
               name: str,
               presets: Iterable[str] = (),
               hide_file_path: bool = False,
               tag_only: bool = False) -> Optional[str]:
        path = self._file_path(diary, name)
        return render_description(path, self.store.read(path), presets, hide_file_path, tag_only)

    # --- Files ---

    def rename_file(self, diary: str, name: str, new_name: str) -> Path:
        return self.mover.rename(self._diary_dir(diary), name, new_name)

    def move_file(self, diary: str, name: str, target_diary: str) -> Path:
        return self.mover.move(self._diary_dir(diary), name, self._diary_dir(target_diary))

    def reconcile(self, diary: str) -> ReconciliationResult:
        return self.reconciler.reconcile(self._diary_dir(diary), max_workers=self.max_workers)

    # --- Recognition ---

    def recognize(self,
                  diary: str,
                  name: str,
                  preset_name: str = config.DEFAULT_PRESET,
                  force: bool = False) -> Optional[Union[DescriptionRecord, EmbeddedMetadata]]:
        if self.recognizer is None:
            raise RecognitionError("No recognition backend configured")
        return self.recognizer.recognize(self._file_path(diary, name), preset_name, force)

    def recognize_diary(self,
                        diary: str,
                        preset_name: str = config.DEFAULT_PRESET,
                        force: bool = False,
                        names: Iterable[str] = ()) -> Dict[str, Union[DescriptionRecord, EmbeddedMetadata]]:
        if self.recognizer is None:
            raise RecognitionError("No recognition backend configured")
        return self.recognizer.recognize_batch(self._diary_dir(diary), preset_name, force, names)

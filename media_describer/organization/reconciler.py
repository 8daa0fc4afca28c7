import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from .. import config
from ..models import ReconciliationResult
from ..scanning.filesystem import DirectoryScanner, is_multimedia, is_sidecar
from ..scanning.hasher import FileHasher


class SidecarReconciler:
    """
    Re-attaches orphaned `.desc.json` files after their media file was
    renamed outside this system, by matching the recorded `fileHash`
    against media files that currently have no sidecar.

    Matching is greedy: orphans are taken in listing order and each claims
    the first listed candidate with the same hash. Byte-identical duplicates
    therefore resolve to whichever is listed first.
    """

    def __init__(self, scanner: Optional[DirectoryScanner] = None, hasher: Optional[FileHasher] = None):
        self.scanner = scanner or DirectoryScanner()
        self.hasher = hasher or FileHasher()

    def reconcile(self, directory: Path, max_workers: int = 1) -> ReconciliationResult:
        """
        Args:
            max_workers: >1 hashes all candidates up front in a thread pool.
                         Matching order is unchanged.
        """
        directory = Path(directory)
        result = ReconciliationResult()

        # One listing snapshot for the whole pass
        names = self.scanner.list_entries(directory)
        present = set(names)

        # 1. Orphans: sidecars whose original name is gone
        orphans = []
        for name in names:
            if not is_sidecar(name):
                continue
            original = name[:-len(config.SIDECAR_SUFFIX)]
            if original not in present:
                orphans.append(name)

        if not orphans:
            return result

        # 2. Candidates: multimedia files without a sidecar
        candidates = [
            n for n in names
            if not is_sidecar(n) and is_multimedia(n) and (n + config.SIDECAR_SUFFIX) not in present
        ]

        hashes: Dict[str, Optional[str]] = {}
        if max_workers > 1 and candidates:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                for name, digest in zip(candidates, executor.map(lambda n: self._safe_hash(directory / n), candidates)):
                    hashes[name] = digest

        # 3. Match each orphan against the remaining candidates
        for desc_name in orphans:
            old_name = desc_name[:-len(config.SIDECAR_SUFFIX)]
            stored_hash = self._stored_hash(directory / desc_name)
            if not stored_hash:
                result.orphaned.append(desc_name)
                continue

            match = self._first_match(directory, candidates, stored_hash, hashes)
            if match is None:
                result.orphaned.append(desc_name)
                continue

            try:
                (directory / desc_name).rename(directory / (match + config.SIDECAR_SUFFIX))
            except OSError as e:
                logging.error(f"Failed to rename {desc_name} -> {match}{config.SIDECAR_SUFFIX}: {e}")
                result.orphaned.append(desc_name)
                continue

            candidates.remove(match)
            result.reconciled.append((old_name, match))
            logging.info(f"Reconciled description {old_name} -> {match}")

        if result.orphaned:
            logging.info(f"{len(result.orphaned)} orphaned description file(s) left in {directory}")
        return result

    def _first_match(self,
                     directory: Path,
                     candidates: List[str],
                     stored_hash: str,
                     hashes: Dict[str, Optional[str]]) -> Optional[str]:
        for name in candidates:
            if name not in hashes:
                hashes[name] = self._safe_hash(directory / name)
            if hashes[name] == stored_hash:
                return name
        return None

    def _stored_hash(self, desc_path: Path) -> Optional[str]:
        try:
            with open(desc_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logging.warning(f"Unreadable description file {desc_path}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return data.get('fileHash') or None

    def _safe_hash(self, path: Path) -> Optional[str]:
        try:
            return self.hasher.compute_hash(path)
        except OSError as e:
            logging.warning(f"Failed to hash {path}: {e}")
            return None

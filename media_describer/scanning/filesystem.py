import logging
import os
from pathlib import Path
from typing import Iterable, List

from .. import config
from ..models import ScanResult


def should_ignore(name: str) -> bool:
    """Dotfiles and dot-folders are never listed."""
    return name.startswith('.')


def is_sidecar(name: str) -> bool:
    return name.endswith(config.SIDECAR_SUFFIX)


def is_multimedia(name: str) -> bool:
    return Path(name).suffix.lower() in config.MULTIMEDIA_EXTS


def is_text(name: str) -> bool:
    return Path(name).suffix.lower() in config.TEXT_EXTS


class DirectoryScanner:
    """Flat (non-recursive) listing of one diary folder."""

    def _list_files(self, directory: Path) -> List[str]:
        """Names of regular files, in listing order. Missing dir -> []."""
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except FileNotFoundError:
            return []
        except OSError as e:
            logging.error(f"Failed to scan directory {directory}: {e}")
            return []

        # Sort for stable listing order
        entries.sort(key=lambda e: e.name)
        names = []
        for e in entries:
            try:
                if e.is_file():
                    names.append(e.name)
            except OSError:
                continue
        return names

    def scan_directory(self, directory: Path) -> ScanResult:
        """
        Splits a folder into text files (.txt/.md) and multimedia files,
        skipping dotfiles and description sidecars. Both lists are sorted.
        """
        result = ScanResult()
        for name in self._list_files(directory):
            if should_ignore(name) or is_sidecar(name):
                continue
            if is_text(name):
                result.text_files.append(name)
            elif is_multimedia(name):
                result.multimedia_files.append(name)

        result.text_files.sort()
        result.multimedia_files.sort()
        return result

    def list_sidecars(self, directory: Path) -> List[str]:
        return [n for n in self._list_files(directory) if not should_ignore(n) and is_sidecar(n)]

    def list_entries(self, directory: Path) -> List[str]:
        """All non-hidden regular file names in one snapshot."""
        return [n for n in self._list_files(directory) if not should_ignore(n)]

    def read_text_files(self, directory: Path, names: Iterable[str]) -> str:
        """Concatenates text files, separated by a horizontal rule."""
        contents = []
        for name in names:
            try:
                contents.append((Path(directory) / name).read_text(encoding='utf-8'))
            except (OSError, UnicodeDecodeError):
                contents.append(f"[Error reading file: {name}]")
        return '\n\n---\n\n'.join(contents)

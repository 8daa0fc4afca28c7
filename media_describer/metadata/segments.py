"""
Segmented description text.

One description string holds any number of named blocks:

    [@PresetA:]
    first description

    [@PresetB:]
    second description

Text without any marker is read as a single implicit 'Native' segment.
"""
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

from .. import config
from ..models import DescriptionRecord, EmbeddedMetadata

_SEGMENT_RE = re.compile(r'\[@([^\]]+):\](.*?)(?=\[@[^\]]+:\]|\Z)', re.DOTALL)

AnyRecord = Union[DescriptionRecord, EmbeddedMetadata]


def parse_segments(description: Optional[str]) -> Dict[str, str]:
    """
    Ordered mapping of segment name -> trimmed content. Empty segments are
    skipped; a repeated name keeps its first position and last content.
    """
    segments: Dict[str, str] = {}
    if not description:
        return segments

    matched = False
    for m in _SEGMENT_RE.finditer(description):
        matched = True
        content = m.group(2).strip()
        if content:
            segments[m.group(1).strip()] = content

    if not matched and description.strip():
        segments[config.NATIVE_SEGMENT] = description.strip()
    return segments


def serialize_segments(segments: Dict[str, str]) -> str:
    return ''.join(f"[@{name}:]\n{content}\n\n" for name, content in segments.items()).rstrip()


def upsert_segment(description: Optional[str], name: str, content: str) -> str:
    """
    Sets the content of segment `name`, keeping its position if it already
    exists and appending it otherwise. Blank content removes the segment.
    """
    segments = parse_segments(description)
    content = (content or '').strip()
    if content:
        segments[name] = content
    else:
        segments.pop(name, None)
    return serialize_segments(segments)


def _requested_set(requested_names: Iterable[str]) -> Optional[Set[str]]:
    """Lower-cased names to select, or None for 'everything'."""
    names = [n for n in requested_names if n]
    if not names or any(n.lower() == 'all' for n in names):
        return None
    return {(n[1:] if n.startswith('@') else n).lower() for n in names}


def _location_line(path: Union[str, Path], hide_file_path: bool) -> str:
    if hide_file_path:
        return f"[文件名: {Path(path).name}]"
    return f"[文件路径: {path}]"


def render_tag_only(path: Union[str, Path], record: Optional[AnyRecord], hide_file_path: bool = False) -> Optional[str]:
    if record is None:
        return None
    tags = (record.tags or '').strip()
    if not tags:
        return None
    return f"Tag: {tags}\n{_location_line(path, hide_file_path)}"


def render_description(path: Union[str, Path],
                       record: Optional[AnyRecord],
                       requested_names: Iterable[str] = (),
                       hide_file_path: bool = False,
                       tag_only: bool = False) -> Optional[str]:
    """
    Renders the selected segments as prompt text:

        [PresetA]
        content

        [PresetB]
        content
        [文件路径: /path/to/file.png]
        Tag: a, b

    Returns None when nothing was selected; callers treat that as
    "no description available".
    """
    if tag_only:
        return render_tag_only(path, record, hide_file_path)
    if record is None or not record.description:
        return None

    segments = parse_segments(record.description)
    wanted = _requested_set(requested_names)
    blocks = [
        f"[{name}]\n{content}"
        for name, content in segments.items()
        if wanted is None or name.lower() in wanted
    ]
    if not blocks:
        return None

    rendered = '\n\n'.join(blocks) + '\n' + _location_line(path, hide_file_path)
    tags = (record.tags or '').strip()
    if tags:
        rendered += f"\nTag: {tags}"
    return rendered


# --- Tags ---

def split_tags(tags: Optional[str]) -> List[str]:
    """Comma-separated tags, trimmed and de-duplicated in order."""
    seen: List[str] = []
    for t in (tags or '').split(','):
        t = t.strip()
        if t and t not in seen:
            seen.append(t)
    return seen


def join_tags(tags: Iterable[str]) -> str:
    return ', '.join(tags)


def merge_tags(old_tags: Optional[str], new_tags: Optional[str]) -> str:
    if not new_tags:
        return old_tags or ''
    if not old_tags:
        return new_tags
    return join_tags(split_tags(f"{old_tags},{new_tags}"))

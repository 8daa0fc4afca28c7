"""
JPEG marker-level reader/writer for the embedded description.

Layout: SOI (FFD8), marker segments, SOS (FFDA), entropy-coded data, EOI.
A segment is FF <marker> followed (for most markers) by a 2-byte big-endian
length that counts itself. Parsing stops at SOS; everything from there on is
opaque and copied verbatim.

Descriptions are written to a COM (FFFE) segment. EXIF ImageDescription is
only read, never written.
"""
import logging
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..exceptions import MalformedFormatError
from ..models import Provenance

SOI = 0xD8
EOI = 0xD9
SOS = 0xDA
COM = 0xFE
APP1 = 0xE1
TEM = 0x01

EXIF_HEADER = b'Exif\x00\x00'
IMAGE_DESCRIPTION_TAG = 0x010E
TIFF_ASCII = 2

MAX_SEGMENT_LENGTH = 0xFFFF


def _is_standalone(marker: int) -> bool:
    """Markers with no length field or payload."""
    return marker in (SOI, EOI, TEM) or 0xD0 <= marker <= 0xD7


@dataclass
class JpegSegment:
    marker: int
    offset: int         # position of the FF byte
    size: int           # total bytes including FF <marker>
    data: bytes = b''   # payload after the length field


def parse_segments(buf: bytes) -> List[JpegSegment]:
    """
    Lists segments up to and including SOS (whose size covers the rest of
    the buffer). Truncated segments end the scan without error.
    """
    if len(buf) < 2 or buf[0] != 0xFF or buf[1] != SOI:
        raise MalformedFormatError("Not a JPEG file (missing SOI)")

    segments = []
    offset = 2
    while offset < len(buf) - 1:
        if buf[offset] != 0xFF:
            offset += 1
            continue

        marker = buf[offset + 1]
        if marker == 0xFF:
            # fill byte
            offset += 1
            continue

        if _is_standalone(marker):
            segments.append(JpegSegment(marker, offset, 2))
            offset += 2
            if marker == EOI:
                break
            continue

        if marker == SOS:
            segments.append(JpegSegment(marker, offset, len(buf) - offset))
            break

        if offset + 3 >= len(buf):
            break
        (seg_len,) = struct.unpack_from('>H', buf, offset + 2)
        if seg_len < 2 or offset + 2 + seg_len > len(buf):
            break
        segments.append(JpegSegment(marker, offset, 2 + seg_len, buf[offset + 4:offset + 2 + seg_len]))
        offset += 2 + seg_len

    return segments


def read_comment(segments: List[JpegSegment]) -> Optional[str]:
    for seg in segments:
        if seg.marker == COM and seg.data:
            return seg.data.decode('utf-8', errors='replace').strip()
    return None


def read_exif_description(payload: bytes) -> Optional[str]:
    """ImageDescription (0x010E, ASCII) from IFD0 of an EXIF APP1 payload."""
    if len(payload) < 14 or payload[:6] != EXIF_HEADER:
        return None

    tiff = payload[6:]
    byte_order = tiff[:2]
    if byte_order == b'II':
        endian = '<'
    elif byte_order == b'MM':
        endian = '>'
    else:
        return None

    def u16(off: int) -> int:
        return struct.unpack_from(endian + 'H', tiff, off)[0]

    def u32(off: int) -> int:
        return struct.unpack_from(endian + 'I', tiff, off)[0]

    if u16(2) != 42:
        return None

    ifd0 = u32(4)
    if ifd0 + 2 > len(tiff):
        return None

    for i in range(u16(ifd0)):
        entry = ifd0 + 2 + i * 12
        if entry + 12 > len(tiff):
            break
        tag = u16(entry)
        value_type = u16(entry + 2)
        if tag != IMAGE_DESCRIPTION_TAG or value_type != TIFF_ASCII:
            continue

        count = u32(entry + 4)
        start = entry + 8 if count <= 4 else u32(entry + 8)
        if start + count > len(tiff):
            return None
        text = tiff[start:start + count].decode('utf-8', errors='replace')
        if text.endswith('\x00'):
            text = text[:-1]
        return text.strip() or None
    return None


def read_description(buf: bytes) -> Optional[Tuple[str, Provenance]]:
    """COM segment first, then the first EXIF APP1 ImageDescription."""
    segments = parse_segments(buf)

    comment = read_comment(segments)
    if comment:
        return comment, Provenance.EMBEDDED_JPEG_COMMENT

    for seg in segments:
        if seg.marker == APP1 and len(seg.data) > 6:
            desc = read_exif_description(seg.data)
            if desc:
                return desc, Provenance.EMBEDDED_EXIF
    return None


def build_com_segment(text: str) -> Optional[bytes]:
    """FF FE + length (payload + 2) + UTF-8 text; None if it can't fit."""
    payload = text.encode('utf-8')
    length = len(payload) + 2
    if length > MAX_SEGMENT_LENGTH:
        logging.warning(f"JPEG comment too long ({length} bytes), skipping embedded write")
        return None
    return bytes([0xFF, COM]) + struct.pack('>H', length) + payload


def embed_description(buf: bytes, text: str) -> Optional[bytes]:
    """
    Returns a new JPEG whose only COM segment holds `text`, or None if there
    is nothing to write.

    The new COM takes the place of the first existing one (other COMs are
    dropped); with none present it goes right before SOS.
    """
    if len(buf) < 2 or buf[0] != 0xFF or buf[1] != SOI:
        raise MalformedFormatError("Not a JPEG file (missing SOI)")
    if not text or not text.strip():
        return None

    com = build_com_segment(text)
    if com is None:
        return None

    parts = [bytes([0xFF, SOI])]
    placed = False
    offset = 2
    while offset < len(buf) - 1:
        if buf[offset] != 0xFF:
            parts.append(buf[offset:])
            break

        marker = buf[offset + 1]
        if marker == 0xFF:
            offset += 1
            continue
        if marker == SOI:
            offset += 2
            continue
        if marker == EOI:
            parts.append(buf[offset:])
            break
        if _is_standalone(marker):
            parts.append(buf[offset:offset + 2])
            offset += 2
            continue
        if marker == SOS:
            if not placed:
                parts.append(com)
                placed = True
            parts.append(buf[offset:])
            break

        if offset + 3 >= len(buf):
            parts.append(buf[offset:])
            break
        (seg_len,) = struct.unpack_from('>H', buf, offset + 2)
        if seg_len < 2 or offset + 2 + seg_len > len(buf):
            parts.append(buf[offset:])
            break

        end = offset + 2 + seg_len
        if marker == COM:
            if not placed:
                parts.append(com)
                placed = True
        else:
            parts.append(buf[offset:end])
        offset = end
    else:
        # loop ran off the end without hitting SOS/EOI; keep any last byte
        parts.append(buf[offset:])

    if not placed:
        parts.insert(1, com)

    return b''.join(parts)

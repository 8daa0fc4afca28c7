"""
PNG chunk-level reader/writer for the embedded description.

A PNG is an 8-byte signature followed by chunks:
    length (4, big-endian) | type (4, ASCII) | data (length) | CRC32 (4)
The CRC covers type + data.

Only text chunks are interpreted; every other chunk is copied byte-for-byte.
"""
import logging
import struct
import zlib
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .. import config
from ..exceptions import MalformedFormatError

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

# Reflected IEEE 802.3 polynomial
_CRC_POLY = 0xEDB88320


def _make_crc_table() -> List[int]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            if c & 1:
                c = _CRC_POLY ^ (c >> 1)
            else:
                c >>= 1
        table.append(c)
    return table


_CRC_TABLE = _make_crc_table()


def crc32(data: bytes) -> int:
    crc = 0xFFFFFFFF
    for b in data:
        crc = _CRC_TABLE[(crc ^ b) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


@dataclass
class PngChunk:
    """A chunk as an (offset, length) range over the original buffer."""
    type: str
    offset: int    # start of the length field
    length: int    # data length

    @property
    def end(self) -> int:
        return self.offset + 12 + self.length

    def data(self, buf: bytes) -> bytes:
        return buf[self.offset + 8:self.offset + 8 + self.length]

    def raw(self, buf: bytes) -> bytes:
        return buf[self.offset:self.end]


def parse_chunks(buf: bytes) -> List[PngChunk]:
    """
    Lists every complete chunk. A chunk that would run past the end of the
    buffer stops the scan without error.
    """
    if len(buf) < 8 or buf[:8] != PNG_SIGNATURE:
        raise MalformedFormatError("Not a PNG file (bad signature)")

    chunks = []
    offset = 8
    while offset + 8 <= len(buf):
        (length,) = struct.unpack_from('>I', buf, offset)
        ctype = buf[offset + 4:offset + 8].decode('ascii', errors='replace')
        if offset + 12 + length > len(buf):
            break
        chunks.append(PngChunk(ctype, offset, length))
        offset += 12 + length
    return chunks


def _read_text(data: bytes) -> Optional[Tuple[str, str]]:
    nul = data.find(b'\x00')
    if nul < 0:
        return None
    return data[:nul].decode('latin-1'), data[nul + 1:].decode('latin-1')


def _read_itext(data: bytes) -> Optional[Tuple[str, str]]:
    nul = data.find(b'\x00')
    if nul < 0:
        return None
    keyword = data[:nul].decode('utf-8', errors='replace')
    pos = nul + 1
    if pos + 2 > len(data):
        return None
    compression_flag = data[pos]
    compression_method = data[pos + 1]
    pos += 2

    # language tag, then translated keyword, both NUL-terminated
    for _ in range(2):
        end = data.find(b'\x00', pos)
        if end < 0:
            return None
        pos = end + 1

    payload = data[pos:]
    if compression_flag == 1 and compression_method == 0:
        try:
            payload = zlib.decompress(payload)
        except zlib.error:
            logging.debug("iTXt inflate failed for keyword %r; reading as raw UTF-8", keyword)
    return keyword, payload.decode('utf-8', errors='replace')


def decode_text_chunk(chunk_type: str, data: bytes) -> Optional[Tuple[str, str]]:
    """Returns (keyword, text) for tEXt/iTXt chunks, None otherwise."""
    if chunk_type == 'tEXt':
        return _read_text(data)
    if chunk_type == 'iTXt':
        return _read_itext(data)
    return None


def build_itxt_data(keyword: str, text: str) -> bytes:
    """Uncompressed iTXt with empty language tag and translated keyword."""
    return (
        keyword.encode('utf-8') + b'\x00'
        + b'\x00\x00'          # compression flag, method
        + b'\x00'              # language tag
        + b'\x00'              # translated keyword
        + text.encode('utf-8')
    )


def build_chunk(chunk_type: str, data: bytes) -> bytes:
    type_bytes = chunk_type.encode('ascii')
    crc = crc32(type_bytes + data)
    return struct.pack('>I', len(data)) + type_bytes + data + struct.pack('>I', crc)


def read_description(buf: bytes) -> Optional[str]:
    """
    Text of the first tEXt/iTXt chunk keyed 'Description' or 'Comment',
    returned verbatim. Chunks with empty text are skipped.
    """
    for chunk in parse_chunks(buf):
        parsed = decode_text_chunk(chunk.type, chunk.data(buf))
        if not parsed:
            continue
        keyword, text = parsed
        if keyword in config.PNG_READ_KEYWORDS and text:
            return text
    return None


def _is_description_chunk(chunk: PngChunk, buf: bytes) -> bool:
    if chunk.type not in ('tEXt', 'iTXt'):
        return False
    data = chunk.data(buf)
    nul = data.find(b'\x00')
    return nul >= 0 and data[:nul] == config.PNG_WRITE_KEYWORD.encode('ascii')


def embed_description(buf: bytes, text: str) -> Optional[bytes]:
    """
    Returns a new PNG with `text` stored in a 'Description' iTXt chunk, or
    None if there is nothing to write.

    The first existing Description chunk is replaced in place; otherwise the
    new chunk goes right after IHDR. All other chunks, and any bytes after
    the last complete chunk, are kept as-is.
    """
    if not text or not text.strip():
        return None

    chunks = parse_chunks(buf)
    new_chunk = build_chunk('iTXt', build_itxt_data(config.PNG_WRITE_KEYWORD, text))

    parts = [PNG_SIGNATURE]
    replaced = False
    for chunk in chunks:
        if not replaced and _is_description_chunk(chunk, buf):
            parts.append(new_chunk)
            replaced = True
            continue
        parts.append(chunk.raw(buf))

    if not replaced:
        insert_at = len(parts)
        for idx, chunk in enumerate(chunks):
            if chunk.type == 'IHDR':
                insert_at = idx + 2  # signature + chunks up to IHDR
                break
        else:
            if chunks:
                insert_at = 2
        parts.insert(insert_at, new_chunk)

    tail_start = chunks[-1].end if chunks else 8
    parts.append(buf[tail_start:])
    return b''.join(parts)

import struct
import zlib

import pytest
from PIL import Image

from media_describer.metadata.store import SidecarStore

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'


def png_chunk(ctype: bytes, data: bytes) -> bytes:
    """Independent chunk builder (zlib CRC) for fixtures."""
    return struct.pack('>I', len(data)) + ctype + data + struct.pack('>I', zlib.crc32(ctype + data) & 0xFFFFFFFF)


def itxt_data(keyword: str, text: str, compressed: bool = False) -> bytes:
    payload = text.encode('utf-8')
    if compressed:
        payload = zlib.compress(payload)
    return keyword.encode('utf-8') + b'\x00' + bytes([1 if compressed else 0, 0]) + b'en\x00' + b'\x00' + payload


@pytest.fixture
def png_chunks():
    """A 1x1 RGB image: IHDR, gAMA, tEXt(Author), IDAT, tIME, IEND."""
    return [
        png_chunk(b'IHDR', struct.pack('>IIBBBBB', 1, 1, 8, 2, 0, 0, 0)),
        png_chunk(b'gAMA', struct.pack('>I', 45455)),
        png_chunk(b'tEXt', b'Author\x00someone'),
        png_chunk(b'IDAT', zlib.compress(b'\x00\xff\x00\x00')),
        png_chunk(b'tIME', struct.pack('>HBBBBB', 2024, 1, 2, 3, 4, 5)),
        png_chunk(b'IEND', b''),
    ]


@pytest.fixture
def png_bytes(png_chunks):
    return PNG_SIGNATURE + b''.join(png_chunks)


@pytest.fixture
def png_file(tmp_path, png_bytes):
    p = tmp_path / "image.png"
    p.write_bytes(png_bytes)
    return p


@pytest.fixture
def jpeg_file(tmp_path):
    p = tmp_path / "photo.jpg"
    Image.new('RGB', (8, 8), 'red').save(p, 'JPEG')
    return p


@pytest.fixture
def exif_jpeg_file(tmp_path):
    """JPEG whose only description is EXIF ImageDescription = 'hello'."""
    p = tmp_path / "exif.jpg"
    exif = Image.Exif()
    exif[0x010E] = "hello"
    Image.new('RGB', (8, 8), 'blue').save(p, 'JPEG', exif=exif.tobytes())
    return p


@pytest.fixture
def store():
    return SidecarStore()

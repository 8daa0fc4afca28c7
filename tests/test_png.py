import zlib

import pytest
from PIL import Image

from media_describer.exceptions import MalformedFormatError
from media_describer.metadata import png
from conftest import PNG_SIGNATURE, itxt_data, png_chunk


@pytest.mark.parametrize("data", [b"", b"IEND", b"tEXtDescription\x00hi", bytes(range(256)) * 3])
def test_crc32_matches_zlib(data):
    assert png.crc32(data) == zlib.crc32(data) & 0xFFFFFFFF


def test_parse_chunks_lists_all_in_order(png_bytes):
    chunks = png.parse_chunks(png_bytes)
    assert [c.type for c in chunks] == ['IHDR', 'gAMA', 'tEXt', 'IDAT', 'tIME', 'IEND']
    assert chunks[2].data(png_bytes) == b'Author\x00someone'


def test_parse_chunks_rejects_non_png():
    with pytest.raises(MalformedFormatError):
        png.parse_chunks(b'GIF89a' + b'\x00' * 20)


def test_parse_chunks_stops_at_truncated_chunk(png_chunks):
    buf = PNG_SIGNATURE + b''.join(png_chunks[:3]) + png_chunks[3][:-6]
    chunks = png.parse_chunks(buf)
    assert [c.type for c in chunks] == ['IHDR', 'gAMA', 'tEXt']


def test_read_description_from_text_chunk(png_chunks):
    buf = PNG_SIGNATURE + png_chunks[0] + png_chunk(b'tEXt', b'Description\x00caf\xe9') + b''.join(png_chunks[1:])
    assert png.read_description(buf) == 'café'


def test_read_description_accepts_comment_keyword(png_chunks):
    buf = PNG_SIGNATURE + png_chunks[0] + png_chunk(b'tEXt', b'Comment\x00a note') + b''.join(png_chunks[1:])
    assert png.read_description(buf) == 'a note'


def test_read_description_first_match_wins(png_chunks):
    buf = (PNG_SIGNATURE + png_chunks[0]
           + png_chunk(b'iTXt', itxt_data('Comment', 'first'))
           + png_chunk(b'tEXt', b'Description\x00second')
           + b''.join(png_chunks[1:]))
    assert png.read_description(buf) == 'first'


def test_read_description_ignores_other_keywords(png_bytes):
    assert png.read_description(png_bytes) is None


def test_read_compressed_itxt(png_chunks):
    text = '一只猫坐在窗台上 ' * 20
    buf = PNG_SIGNATURE + png_chunks[0] + png_chunk(b'iTXt', itxt_data('Description', text, compressed=True)) + b''.join(png_chunks[1:])
    assert png.read_description(buf) == text


def test_broken_compressed_itxt_falls_back_to_raw_text():
    data = b'Description\x00\x01\x00\x00\x00not actually zlib'
    assert png.decode_text_chunk('iTXt', data) == ('Description', 'not actually zlib')


def test_embed_inserts_after_ihdr_and_keeps_other_chunks(png_bytes):
    original = png.parse_chunks(png_bytes)
    out = png.embed_description(png_bytes, "a red pixel")

    chunks = png.parse_chunks(out)
    assert [c.type for c in chunks] == ['IHDR', 'iTXt', 'gAMA', 'tEXt', 'IDAT', 'tIME', 'IEND']

    # every untouched chunk is byte-identical and in order
    kept = [c.raw(out) for c in chunks if c.type != 'iTXt']
    assert kept == [c.raw(png_bytes) for c in original]


def test_embed_roundtrip_exact_text(png_bytes):
    text = "[@Preset:]\n描述 with émoji 🐈\n\n[@Other:]\nline two"
    out = png.embed_description(png_bytes, text)
    assert png.read_description(out) == text


def test_embedded_chunk_has_valid_crc(png_bytes):
    out = png.embed_description(png_bytes, "checksum me")
    itxt = [c for c in png.parse_chunks(out) if c.type == 'iTXt'][0]
    stored = int.from_bytes(out[itxt.end - 4:itxt.end], 'big')
    assert stored == zlib.crc32(b'iTXt' + itxt.data(out)) & 0xFFFFFFFF


def test_embed_replaces_existing_description_in_place(png_chunks):
    buf = (PNG_SIGNATURE + png_chunks[0] + png_chunks[1]
           + png_chunk(b'tEXt', b'Description\x00old')
           + b''.join(png_chunks[2:]))
    out = png.embed_description(buf, "new")

    types = [c.type for c in png.parse_chunks(out)]
    assert types == ['IHDR', 'gAMA', 'iTXt', 'tEXt', 'IDAT', 'tIME', 'IEND']
    assert png.read_description(out) == "new"


def test_embed_twice_keeps_one_description(png_bytes):
    out = png.embed_description(png.embed_description(png_bytes, "one"), "two")
    texts = [png.decode_text_chunk(c.type, c.data(out)) for c in png.parse_chunks(out)]
    assert [t for t in texts if t and t[0] == 'Description'] == [('Description', 'two')]


def test_embed_blank_text_is_noop(png_bytes):
    assert png.embed_description(png_bytes, "   \n") is None


def test_pillow_reads_embedded_description(tmp_path, png_bytes):
    p = tmp_path / "out.png"
    p.write_bytes(png.embed_description(png_bytes, "seen by pillow"))
    with Image.open(p) as im:
        im.load()
        assert im.text['Description'] == "seen by pillow"
        assert im.size == (1, 1)

import hashlib
import json

import pytest

from media_describer.core import KnowledgeMediaLibrary
from media_describer.exceptions import FileOperationError, RecognitionError
from media_describer.models import DescriptionRecord, FileEntry


@pytest.fixture
def library(tmp_path, png_bytes):
    diary = tmp_path / "cats"
    diary.mkdir()
    (diary / "tabby.png").write_bytes(png_bytes)
    (diary / "notes.txt").write_text("cat notes", encoding="utf-8")
    (diary / "purr.mp3").write_bytes(b"ID3 purr")
    (tmp_path / "dogs").mkdir()
    (tmp_path / ".trash").mkdir()
    return KnowledgeMediaLibrary(tmp_path)


def test_list_diaries(library):
    assert library.list_diaries() == ["cats", "dogs"]


def test_list_files_reports_status(library):
    library.set_description("cats", "purr.mp3", "[@A:]\npurring", "cat")

    files = library.list_files("cats")

    assert files == [
        FileEntry(name="notes.txt", type="text"),
        FileEntry(name="purr.mp3", type="audio", has_description=True, has_tags=True),
        FileEntry(name="tabby.png", type="image"),
    ]


def test_list_files_reconciles_renamed_file(library, tmp_path):
    library.set_description("cats", "tabby.png", "[@A:]\na tabby")
    (tmp_path / "cats" / "tabby.png").rename(tmp_path / "cats" / "orange.png")

    files = {f.name: f for f in library.list_files("cats")}

    assert files["orange.png"].has_description
    assert (tmp_path / "cats" / "orange.png.desc.json").exists()


def test_set_description_is_manual_edit(library):
    rec = library.set_description("cats", "purr.mp3", "text", "a, b")
    assert isinstance(rec, DescriptionRecord)
    assert rec.model_used == "manual-edit"
    assert library.get_description("cats", "purr.mp3").tags == "a, b"


@pytest.mark.parametrize("mode,tags,expected", [
    ("append", "b, c", "a, b, c"),
    ("remove", "a", "b"),
    ("replace", "z", "z"),
    ("unknown", "z, z", "z"),
])
def test_update_tags(library, mode, tags, expected):
    library.set_description("cats", "purr.mp3", "d", "a, b")
    result = library.update_tags("cats", "purr.mp3", mode, tags)

    assert result["previousTags"] == "a, b"
    assert result["currentTags"] == expected
    assert library.get_description("cats", "purr.mp3").tags == expected


def test_delete_description(library):
    library.set_description("cats", "purr.mp3", "d")
    assert library.delete_description("cats", "purr.mp3") is True
    assert library.get_description("cats", "purr.mp3") is None


def test_rename_file_carries_sidecar(library, tmp_path):
    library.set_description("cats", "purr.mp3", "d")
    library.rename_file("cats", "purr.mp3", "meow.mp3")

    assert (tmp_path / "cats" / "meow.mp3.desc.json").exists()
    assert not (tmp_path / "cats" / "purr.mp3.desc.json").exists()
    assert library.get_description("cats", "meow.mp3").description == "d"


def test_rename_refuses_existing_target(library):
    with pytest.raises(FileOperationError):
        library.rename_file("cats", "purr.mp3", "tabby.png")


def test_move_file_to_other_diary(library, tmp_path):
    library.set_description("cats", "tabby.png", "d")
    library.move_file("cats", "tabby.png", "birds")

    assert (tmp_path / "birds" / "tabby.png").exists()
    assert (tmp_path / "birds" / "tabby.png.desc.json").exists()
    assert not (tmp_path / "cats" / "tabby.png").exists()


def test_reconcile_reports(library, tmp_path):
    orphan = tmp_path / "cats" / "lost.png.desc.json"
    orphan.write_text(json.dumps({"fileHash": hashlib.sha256(b"nothing").hexdigest()}), encoding="utf-8")

    result = library.reconcile("cats")

    assert result.orphaned == ["lost.png.desc.json"]


def test_render(library):
    library.set_description("cats", "purr.mp3", "[@A:]\npurring\n\n[@B:]\nloud", "cat")
    assert library.render("cats", "purr.mp3", ["b"], hide_file_path=True) == "[B]\nloud\n[文件名: purr.mp3]\nTag: cat"
    assert library.render("cats", "tabby.png") is None


def test_read_text(library):
    assert library.read_text("cats") == "cat notes"


def test_recognize_requires_backend(library):
    with pytest.raises(RecognitionError):
        library.recognize("cats", "tabby.png")


def test_recognize_with_backend(tmp_path, png_bytes):
    (tmp_path / "d").mkdir()
    (tmp_path / "d" / "x.png").write_bytes(png_bytes)
    library = KnowledgeMediaLibrary(tmp_path, backend=lambda path, preset: ("seen", "t1"), model_name="m")

    rec = library.recognize("d", "x.png", "Quick")

    assert rec.description == "[@Quick:]\nseen"
    assert library.recognize_diary("d", "Quick")["x.png"].description == "[@Quick:]\nseen"

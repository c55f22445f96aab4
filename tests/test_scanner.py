import pytest
from conftest import make_image_bytes

from photo_ingest.scanner import load_file_item, scan_input


@pytest.fixture
def photo_dir(tmp_path):
    (tmp_path / "b.JPG").write_bytes(b"x")
    (tmp_path / "a.png").write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("x")
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "c.webp").write_bytes(b"x")
    return tmp_path


def test_scan_flat_is_sorted_and_filtered(photo_dir):
    names = [p.name for p in scan_input(str(photo_dir))]
    assert names == ["a.png", "b.JPG"]


def test_scan_recursive(photo_dir):
    names = [p.name for p in scan_input(str(photo_dir), recursive=True)]
    assert sorted(names) == ["a.png", "b.JPG", "c.webp"]


def test_scan_custom_extensions_and_limit(photo_dir):
    assert [p.name for p in scan_input(str(photo_dir), extensions=["txt"])] == ["notes.txt"]
    assert len(scan_input(str(photo_dir), recursive=True, limit=1)) == 1


def test_scan_single_file(photo_dir):
    assert scan_input(str(photo_dir / "a.png")) == [photo_dir / "a.png"]


def test_scan_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        scan_input(str(tmp_path / "missing"))


def test_load_file_item_guesses_mime(tmp_path):
    path = tmp_path / "shot.jpeg"
    data = make_image_bytes("JPEG", (10, 10))
    path.write_bytes(data)

    item = load_file_item(path)

    assert item.name == "shot.jpeg"
    assert item.mime_type == "image/jpeg"
    assert item.size == len(data)
    assert item.data == data

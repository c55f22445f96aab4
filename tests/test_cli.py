from unittest.mock import patch

import pytest
from conftest import make_image_bytes

from photo_ingest.cli import main


def test_cli_help_displays():
    """Test --help works without errors."""
    with patch("sys.argv", ["photo-ingest", "--help"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0


@pytest.mark.parametrize("command", ["serve", "ingest", "probe"])
def test_cli_subcommand_help(command):
    """Test subcommand help."""
    with patch("sys.argv", ["photo-ingest", command, "--help"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0


def test_cli_no_command_prints_help(capsys):
    with patch("sys.argv", ["photo-ingest"]):
        main()
    assert "usage: photo-ingest" in capsys.readouterr().out


def test_cli_probe(capsys):
    """Probe prints the host profile and derived limits."""
    with patch("sys.argv", ["photo-ingest", "probe"]):
        main()
    out = capsys.readouterr().out
    assert "HOST PROFILE" in out
    assert "Job concurrency:" in out
    assert "Encode workers:" in out


def test_cli_ingest_requires_owner():
    with patch("sys.argv", ["photo-ingest", "ingest", "--input", "."]):
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 2


def test_cli_ingest_missing_input(tmp_path, capsys):
    missing = tmp_path / "nope"
    with patch("sys.argv", ["photo-ingest", "ingest", "--input", str(missing), "--owner", "u1"]):
        with pytest.raises(SystemExit) as exc_info:
            main()
    assert exc_info.value.code == 1
    assert "not found" in capsys.readouterr().out


def test_cli_ingest_folder(tmp_path, capsys):
    """End to end: a folder of images lands in a SQLite catalog in fallback mode."""
    photos = tmp_path / "photos"
    photos.mkdir()
    (photos / "one.jpg").write_bytes(make_image_bytes("JPEG", (120, 80)))
    (photos / "two.png").write_bytes(make_image_bytes("PNG", (60, 60)))
    (photos / "broken.jpg").write_bytes(b"")
    (photos / "readme.txt").write_text("not an image")
    db_url = f"sqlite:///{tmp_path / 'catalog.db'}"

    argv = [
        "photo-ingest", "ingest",
        "--input", str(photos),
        "--owner", "u1",
        "--album", "CLI Album",
        "--db", db_url,
        "--workers", "2",
    ]
    with patch("sys.argv", argv):
        main()

    out = capsys.readouterr().out
    assert "INGEST SUMMARY" in out
    assert "Status:               completed" in out
    assert "Failed attempts:      0/3" in out
    assert "Succeeded:            2" in out
    assert "Failed:               1" in out
    assert "broken.jpg: CORRUPT_IMAGE" in out
    assert (tmp_path / "catalog.db").exists()

"""Tests for the atomic write and locked read helpers."""

import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from gren.utils.io import read_locked, write_atomic


def mode_of(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


class TestWriteAtomic:
    """Tests for write_atomic."""

    def test_creates_parents_and_sets_mode(self, tmp_path: Path):
        target = tmp_path / "nested" / "record.json"

        write_atomic(target, "{}\n", mode=0o600)

        assert target.read_text() == "{}\n"
        assert mode_of(target) == 0o600

    def test_replaces_existing_file(self, tmp_path: Path):
        target = tmp_path / "directive.sh"
        target.write_text("old\n")

        write_atomic(target, "new\n", mode=0o644)

        assert target.read_text() == "new\n"
        assert mode_of(target) == 0o644
        assert [p.name for p in tmp_path.iterdir()] == ["directive.sh"]

    def test_failed_replace_leaves_no_temp_file(self, tmp_path: Path):
        target = tmp_path / "record.json"
        target.write_text("kept\n")

        with patch("gren.utils.io.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                write_atomic(target, "lost\n", mode=0o600)

        assert target.read_text() == "kept\n"
        assert [p.name for p in tmp_path.iterdir()] == ["record.json"]


class TestReadLocked:
    """Tests for read_locked."""

    def test_missing_file(self, tmp_path: Path):
        assert read_locked(tmp_path / "absent.json") is None

    def test_reads_content(self, tmp_path: Path):
        target = tmp_path / "record.json"
        target.write_text('{"a": 1}')

        assert read_locked(target) == '{"a": 1}'

    def test_unlockable_file_is_still_read(self, tmp_path: Path):
        target = tmp_path / "record.json"
        target.write_text("data")

        with patch("gren.utils.io.fcntl.flock", side_effect=OSError("no locks")):
            assert read_locked(target) == "data"

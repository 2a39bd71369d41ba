"""Unit tests for find-by-name lookup and stats collection."""

from __future__ import annotations

from pathlib import Path

import pytest

from inkwell.storage.fs.lookup import find_by_name
from inkwell.storage.fs.stats import collect_stats
from inkwell.storage.models.files import FileCountStats


@pytest.fixture
def root(tmp_path: Path) -> Path:
    files = {
        "Notes.md": b"12345",
        "journal/notes.md": b"123",
        "journal/notes": b"1",
        "projects/meeting-notes.md": b"1234567890",
        "projects/readme.txt": b"",
        ".git/notes.md": b"metadata",
    }
    for rel, data in files.items():
        target = tmp_path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return tmp_path


def test_exact_name_is_case_insensitive(root: Path) -> None:
    assert find_by_name(root, "NOTES.MD") == ["Notes.md", "journal/notes.md", "projects/meeting-notes.md"]


def test_ranking_exact_then_stem_then_substring(root: Path) -> None:
    assert find_by_name(root, "notes") == [
        "journal/notes",
        "Notes.md",
        "journal/notes.md",
        "projects/meeting-notes.md",
    ]


@pytest.mark.parametrize("needle", ["", "   ", "missing.md"])
def test_no_match_is_empty(root: Path, needle: str) -> None:
    assert find_by_name(root, needle) == []


def test_missing_root_is_empty(tmp_path: Path) -> None:
    assert find_by_name(tmp_path / "nope", "a.md") == []


def test_stats_exclude_git(root: Path) -> None:
    stats = collect_stats(root)
    assert stats.total_files == 5
    assert stats.total_size == 5 + 3 + 1 + 10 + 0


def test_stats_missing_root_is_zero(tmp_path: Path) -> None:
    stats = collect_stats(tmp_path / "nope")
    assert (stats.total_files, stats.total_size) == (0, 0)


def test_stats_add() -> None:
    total = FileCountStats(total_files=1, total_size=10) + FileCountStats(total_files=2, total_size=5)
    assert total == FileCountStats(total_files=3, total_size=15)

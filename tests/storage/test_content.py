"""Unit tests for file content operations.

No repository involved -- plain files under a temporary directory.
"""

from __future__ import annotations

import os
import stat
from functools import partial
from pathlib import Path

import pytest

from inkwell.storage.errors import EntryExistsError, EntryNotFoundError, InvalidPathError
from inkwell.storage.fs import content
from inkwell.storage.fs.paths import WorkspaceKey, WorkspacePaths
from inkwell.storage.models.files import UploadFile


@pytest.fixture
def root(tmp_path: Path) -> Path:
    path = tmp_path / "ws"
    path.mkdir()
    return path.resolve()


# -- read / write --------------------------------------------------------------


def test_write_is_byte_exact_and_creates_parents(root: Path) -> None:
    data = b"\x00\xff# Title\r\n\xe2\x9c\x93"
    target = root / "a" / "b" / "c.md"

    content.atomic_write(target, data)

    assert content.read_file(target) == data
    # No temp files left next to the target.
    assert [p.name for p in target.parent.iterdir()] == ["c.md"]


def test_write_overwrites(root: Path) -> None:
    target = root / "notes.md"
    content.atomic_write(target, b"first")
    content.atomic_write(target, b"second")
    assert target.read_bytes() == b"second"


def test_new_file_mode_follows_umask(root: Path) -> None:
    umask = os.umask(0)
    os.umask(umask)
    target = root / "fresh.md"

    content.atomic_write(target, b"x")

    assert stat.S_IMODE(target.stat().st_mode) == 0o666 & ~umask


def test_overwrite_keeps_existing_mode(root: Path) -> None:
    target = root / "shared.md"
    target.write_bytes(b"first")
    target.chmod(0o640)

    content.atomic_write(target, b"second")

    assert target.read_bytes() == b"second"
    assert stat.S_IMODE(target.stat().st_mode) == 0o640


def test_write_onto_folder_conflicts(root: Path) -> None:
    (root / "docs").mkdir()
    with pytest.raises(EntryExistsError):
        content.atomic_write(root / "docs", b"x")


def test_write_below_a_file_conflicts(root: Path) -> None:
    (root / "docs").write_bytes(b"I am a file")
    with pytest.raises(EntryExistsError):
        content.atomic_write(root / "docs" / "a.md", b"x")


def test_read_missing_or_folder(root: Path) -> None:
    with pytest.raises(EntryNotFoundError):
        content.read_file(root / "missing.md")
    (root / "docs").mkdir()
    with pytest.raises(EntryNotFoundError):
        content.read_file(root / "docs")


# -- delete --------------------------------------------------------------------


def test_delete_file_and_folder(root: Path) -> None:
    content.atomic_write(root / "a.md", b"a")
    content.atomic_write(root / "docs" / "deep" / "b.md", b"b")

    content.delete_entry(root / "a.md", root=root)
    content.delete_entry(root / "docs", root=root)

    assert list(root.iterdir()) == []


def test_delete_missing(root: Path) -> None:
    with pytest.raises(EntryNotFoundError):
        content.delete_entry(root / "missing.md", root=root)


def test_delete_root_refused(root: Path) -> None:
    with pytest.raises(InvalidPathError):
        content.delete_entry(root, root=root)
    assert root.is_dir()


# -- move ----------------------------------------------------------------------


def test_move_renames_and_creates_parents(root: Path) -> None:
    content.atomic_write(root / "a.md", b"a")

    content.move_entry(root / "a.md", root / "archive" / "2024" / "a.md", root=root)

    assert not (root / "a.md").exists()
    assert (root / "archive" / "2024" / "a.md").read_bytes() == b"a"


def test_move_conflict_and_overwrite(root: Path) -> None:
    content.atomic_write(root / "a.md", b"a")
    content.atomic_write(root / "b.md", b"b")

    with pytest.raises(EntryExistsError):
        content.move_entry(root / "a.md", root / "b.md", root=root)
    assert (root / "a.md").exists()

    content.move_entry(root / "a.md", root / "b.md", root=root, overwrite=True)
    assert (root / "b.md").read_bytes() == b"a"
    assert not (root / "a.md").exists()


def test_move_folder_onto_folder_always_conflicts(root: Path) -> None:
    (root / "x").mkdir()
    (root / "y").mkdir()
    with pytest.raises(EntryExistsError):
        content.move_entry(root / "x", root / "y", root=root, overwrite=True)


def test_move_folder_into_itself(root: Path) -> None:
    (root / "docs").mkdir()
    with pytest.raises(InvalidPathError):
        content.move_entry(root / "docs", root / "docs" / "inner", root=root)


def test_move_missing_source(root: Path) -> None:
    with pytest.raises(EntryNotFoundError):
        content.move_entry(root / "missing.md", root / "b.md", root=root)


def test_move_symlink_moves_the_link(root: Path) -> None:
    (root / "a.md").write_bytes(b"a")
    os.symlink(root / "a.md", root / "alias.md")

    content.move_entry(root / "alias.md", root / "renamed.md", root=root)

    assert (root / "renamed.md").is_symlink()
    assert not (root / "alias.md").exists()
    assert (root / "a.md").read_bytes() == b"a"


def test_delete_symlink_keeps_target(root: Path) -> None:
    (root / "real").mkdir()
    (root / "real" / "keep.md").write_bytes(b"keep")
    os.symlink(root / "real", root / "shortcut")

    content.delete_entry(root / "shortcut", root=root)

    assert not (root / "shortcut").is_symlink()
    assert (root / "real" / "keep.md").read_bytes() == b"keep"


# -- bulk upload ---------------------------------------------------------------


def test_bulk_upload_continues_past_failures(tmp_path: Path) -> None:
    paths = WorkspacePaths(data_root=tmp_path)
    key = WorkspaceKey.of(1, "ws")
    paths.ensure_root(key)
    directory = paths.resolve(key, "inbox")
    (directory / "taken").mkdir(parents=True)

    results = content.bulk_upload(
        directory,
        [
            UploadFile(name="a.md", content=b"a"),
            UploadFile(name="../../../escape.md", content=b"evil"),
            UploadFile(name="taken", content=b"clash"),
            UploadFile(name="sub/b.md", content=b"b"),
        ],
        partial(paths.resolve, key),
        partial(paths.relative, key),
    )

    assert [(r.path, r.success) for r in results] == [
        ("inbox/a.md", True),
        ("inbox/../../../escape.md", False),
        ("inbox/taken", False),
        ("inbox/sub/b.md", True),
    ]
    assert results[1].error is not None
    assert (directory / "sub" / "b.md").read_bytes() == b"b"
    assert not (tmp_path / "escape.md").exists()


def test_remove_tree_missing_is_noop(tmp_path: Path) -> None:
    content.remove_tree(tmp_path / "nope")

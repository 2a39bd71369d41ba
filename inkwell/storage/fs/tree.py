"""Workspace tree listing.

Walks a sandbox root and produces the hierarchical ``FileNode`` listing shown
in the file browser, plus a streaming file iterator used by name lookup and
size accounting.

Ordering is deterministic: folders before files, then case-sensitive
alphabetical.  Reserved internal names (``.git``) are skipped at every level.
Symlinks are never followed out of the sandbox; a symlink to an in-sandbox
folder is listed but not descended into, so link cycles cannot recurse.

These are plain synchronous functions; callers on the event loop run them
via ``anyio.to_thread.run_sync``.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

from inkwell.storage.fs.paths import RESERVED_NAMES
from inkwell.storage.models.files import FileNode


def list_tree(root: Path) -> list[FileNode]:
    """Return the children of the virtual root node.  A missing root lists as empty."""
    real_root = root.resolve()
    if not real_root.is_dir():
        return []
    return _walk(real_root, real_root, "")


def _walk(real_root: Path, directory: Path, prefix: str) -> list[FileNode]:
    dirs: list[tuple[str, bool]] = []
    files: list[str] = []

    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.name in RESERVED_NAMES:
                continue
            kind = _classify(real_root, entry)
            if kind == "dir":
                dirs.append((entry.name, True))
            elif kind == "linked_dir":
                dirs.append((entry.name, False))
            elif kind == "file":
                files.append(entry.name)

    dirs.sort()
    files.sort()

    nodes: list[FileNode] = []
    for name, descend in dirs:
        path = f"{prefix}{name}"
        children = _walk(real_root, directory / name, f"{path}/") if descend else []
        nodes.append(FileNode(id=path, name=name, path=path, children=children))
    for name in files:
        path = f"{prefix}{name}"
        nodes.append(FileNode(id=path, name=name, path=path))
    return nodes


def _classify(real_root: Path, entry: os.DirEntry[str]) -> str | None:
    """Return ``dir``, ``linked_dir``, ``file`` or ``None`` (skip)."""
    if not entry.is_symlink():
        if entry.is_dir(follow_symlinks=False):
            return "dir"
        if entry.is_file(follow_symlinks=False):
            return "file"
        return None

    # Symlink: only keep it if the target stays inside the sandbox.
    try:
        target = Path(entry.path).resolve(strict=True)
    except (OSError, RuntimeError):
        return None
    if target != real_root and not target.is_relative_to(real_root):
        return None
    inner = target.relative_to(real_root).parts
    if inner and inner[0] in RESERVED_NAMES:
        return None
    if target.is_dir():
        return "linked_dir"
    if target.is_file():
        return "file"
    return None


def iter_files(root: Path) -> Iterator[tuple[str, Path]]:
    """Yield ``(relative_path, absolute_path)`` for every regular file under ``root``.

    Streams entries as the walk proceeds rather than building the whole tree
    in memory.  Symlinks are skipped entirely so each file is counted once.
    """
    real_root = root.resolve()
    if not real_root.is_dir():
        return
    stack: list[tuple[Path, str]] = [(real_root, "")]
    while stack:
        directory, prefix = stack.pop()
        with os.scandir(directory) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.name in RESERVED_NAMES or entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    stack.append((Path(entry.path), f"{prefix}{entry.name}/"))
                elif entry.is_file(follow_symlinks=False):
                    yield f"{prefix}{entry.name}", Path(entry.path)

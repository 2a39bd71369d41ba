"""Find files by name, for resolving wiki-style links to concrete paths.

Matching is case-insensitive (``str.casefold``) on the base name only.
Results are ranked so the most likely link target comes first:

1. the whole name equals the needle (``notes.md``),
2. the name without its extension equals the needle (``notes``),
3. the name contains the needle (``meeting`` -> ``meeting-notes.md``).

Within a rank, paths sort alphabetically.  Several files sharing a name in
different folders are all returned; picking one is the caller's job.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from inkwell.storage.fs.tree import iter_files


def find_by_name(root: Path, needle: str) -> list[str]:
    """Return workspace-relative paths whose base name matches ``needle``.

    Never raises for "no match" -- an empty needle or an empty workspace
    yields ``[]``.
    """
    wanted = needle.strip().casefold()
    if not wanted:
        return []

    ranked: list[tuple[int, str]] = []
    for rel_path, _ in iter_files(root):
        rank = _match_rank(PurePosixPath(rel_path).name, wanted)
        if rank is not None:
            ranked.append((rank, rel_path))

    ranked.sort()
    return [path for _, path in ranked]


def _match_rank(name: str, wanted: str) -> int | None:
    folded = name.casefold()
    if folded == wanted:
        return 0
    stem = PurePosixPath(folded).stem
    if stem == wanted:
        return 1
    if wanted in folded:
        return 2
    return None

"""File count and size accounting for workspaces.

Stats are derived on demand from a tree walk and never cached here; callers
that report frequently may cache the results themselves.
"""

from __future__ import annotations

from pathlib import Path

from inkwell.storage.fs.tree import iter_files
from inkwell.storage.models.files import FileCountStats


def collect_stats(root: Path) -> FileCountStats:
    """Count regular files and their total byte size under ``root``.

    ``.git`` metadata and symlinks are excluded.  A missing root counts as
    empty; callers that need a "workspace missing" error check beforehand.
    """
    total_files = 0
    total_size = 0
    for _, path in iter_files(root):
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            # Deleted between listing and stat.
            continue
        total_files += 1
        total_size += size
    return FileCountStats(total_files=total_files, total_size=total_size)

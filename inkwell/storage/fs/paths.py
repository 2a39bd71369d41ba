"""Workspace sandbox layout and path resolution.

Every workspace owns exactly one sandbox directory on disk:

- ``{data_root}/{prefix}/workspaces/{user_id}/{workspace_id}/``

(the prefix segment is omitted when unset).  The mapping is pure: it depends
only on the identity pair, never on free-form user input, and two distinct
pairs never produce overlapping trees.

``WorkspacePaths.resolve`` is the single place traversal defenses live.  Every
path-accepting operation in the storage core funnels through it:

1. The relative path is cleaned lexically, on its own.  A result that still
   climbs (``..``) is rejected here, before any syscall touches it.
2. The cleaned path is joined to the root and canonicalized, which resolves
   symlinks.  The canonical result must equal the canonical root or sit
   beneath it.
"""

from __future__ import annotations

import posixpath
import re
from pathlib import Path
from typing import NamedTuple

from inkwell.storage.errors import PathTraversalError, ReservedPathError

RESERVED_NAMES = frozenset({".git"})
"""Internal names hidden from listings and refused as user paths."""

_IDENTITY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class WorkspaceKey(NamedTuple):
    """Identity of a workspace: the owning user and the workspace id."""

    user_id: str
    workspace_id: str

    @classmethod
    def of(cls, user_id: int | str, workspace_id: int | str) -> WorkspaceKey:
        """Build a key, rejecting ids that are not plain identifier tokens."""
        return cls(_identity_part("user_id", user_id), _identity_part("workspace_id", workspace_id))

    def __str__(self) -> str:
        return f"{self.user_id}/{self.workspace_id}"


def _identity_part(field: str, value: int | str) -> str:
    if isinstance(value, bool):
        msg = f"Invalid {field}: {value!r}"
        raise ValueError(msg)
    if isinstance(value, int):
        if value < 1:
            msg = f"Invalid {field}: {value!r}"
            raise ValueError(msg)
        return str(value)
    if not isinstance(value, str) or not _IDENTITY_RE.fullmatch(value):
        msg = f"Invalid {field}: {value!r}"
        raise ValueError(msg)
    return value


def clean_relative(relative_path: str) -> str:
    """Lexically normalise a workspace-relative path.

    Collapses ``.``, ``..`` and duplicate separators without touching the
    filesystem.  A leading ``/`` is treated as workspace-relative.  Returns
    ``""`` for the root.  Raises ``PathTraversalError`` when the path climbs
    out of the root or contains a NUL byte.
    """
    if "\x00" in relative_path:
        raise PathTraversalError(relative_path, "path contains NUL byte")

    stripped = relative_path.lstrip("/")
    if stripped in ("", "."):
        return ""

    cleaned = posixpath.normpath(stripped)
    if cleaned == "..":
        raise PathTraversalError(relative_path)
    if cleaned.startswith("../"):
        raise PathTraversalError(relative_path)
    if cleaned == ".":
        return ""

    if any(part in RESERVED_NAMES for part in cleaned.split("/")):
        raise ReservedPathError(relative_path)
    return cleaned


class WorkspacePaths:
    """Sandbox layout for every workspace under one data root.

    Constructed once from settings; cheap to query per request.
    """

    def __init__(self, *, data_root: Path, prefix: str | None = None) -> None:
        base = data_root
        if prefix:
            base = base / prefix
        self.base = base / "workspaces"

    def root(self, key: WorkspaceKey) -> Path:
        """Sandbox root for a workspace: ``{base}/workspaces/{user}/{workspace}/``."""
        return self.base / key.user_id / key.workspace_id

    def resolve(self, key: WorkspaceKey, relative_path: str, *, follow_final: bool = True) -> Path:
        """Map a workspace-relative path to an absolute location inside the sandbox.

        ``""`` and ``"."`` resolve to the root.  Raises ``PathTraversalError``
        (or ``ReservedPathError``) if the path escapes the sandbox, directly
        or through a symlink, or names internal metadata.

        With ``follow_final=False`` only the parent folder is canonicalized and
        the last component is joined as-is, so a symlink names the link itself.
        Delete and move use this mode so they act on the listed entry, not on
        the link target.
        """
        cleaned = clean_relative(relative_path)

        root = self.root(key).resolve()
        if not cleaned:
            return root

        if follow_final:
            candidate = (root / cleaned).resolve()
        else:
            parent, _, name = cleaned.rpartition("/")
            candidate = (root / parent).resolve() / name
        if candidate != root and not candidate.is_relative_to(root):
            raise PathTraversalError(relative_path)

        # A symlink inside the sandbox may still point at metadata.
        inner = candidate.relative_to(root).parts
        if any(part in RESERVED_NAMES for part in inner):
            raise ReservedPathError(relative_path)
        return candidate

    def relative(self, key: WorkspaceKey, absolute: Path) -> str:
        """Inverse of ``resolve``: the forward-slash path of ``absolute`` under the root (``""`` for the root)."""
        rel = absolute.relative_to(self.root(key).resolve()).as_posix()
        return "" if rel == "." else rel

    def ensure_root(self, key: WorkspaceKey) -> Path:
        """Create the sandbox directory on disk (idempotent)."""
        root = self.root(key)
        root.mkdir(parents=True, exist_ok=True)
        return root

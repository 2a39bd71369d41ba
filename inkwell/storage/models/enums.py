"""Shared enumerations used across the storage core."""

from __future__ import annotations

from enum import StrEnum

# -- Repository ----------------------------------------------------------------


class RepositoryState(StrEnum):
    """Attachment state of a workspace's remote repository."""

    DETACHED = "detached"
    CONFIGURING = "configuring"
    ATTACHED = "attached"


# -- Content -------------------------------------------------------------------


class FileAction(StrEnum):
    """User action substituted for ``${action}`` in commit messages."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RENAME = "rename"
    MOVE = "move"
    UPLOAD = "upload"

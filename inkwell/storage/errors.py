"""Domain exceptions raised by the storage core.

Every exception derives from ``StorageError`` *and* the closest builtin, so a
caller may catch either ``PathTraversalError`` or plain ``ValueError``.  The
core never raises HTTP exceptions -- translating these into responses is the
caller's responsibility.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for all storage core failures."""


# -- Paths ---------------------------------------------------------------------


class InvalidPathError(StorageError, ValueError):
    """Raised when a path is syntactically unusable for the requested operation."""


class PathTraversalError(InvalidPathError):
    """Raised when a path would resolve outside the workspace sandbox."""

    def __init__(self, path: str, message: str = "path escapes workspace") -> None:
        self.path = path
        super().__init__(f"{message}: {path!r}")


class ReservedPathError(PathTraversalError):
    """Raised when a path targets internal metadata such as ``.git``."""

    def __init__(self, path: str) -> None:
        super().__init__(path, "path is reserved")


# -- Entries -------------------------------------------------------------------


class EntryNotFoundError(StorageError, LookupError):
    """Raised when a file or directory does not exist in the workspace."""


class WorkspaceNotFoundError(StorageError, LookupError):
    """Raised when the sandbox directory of a workspace does not exist."""


class EntryExistsError(StorageError, FileExistsError):
    """Raised when a destination is already occupied."""


class StorageIOError(StorageError, OSError):
    """Raised when the disk rejects an operation (permissions, ENOSPC, ...)."""


# -- Locking -------------------------------------------------------------------


class WorkspaceBusyError(StorageError, TimeoutError):
    """Raised when a workspace lock could not be acquired in time."""


# -- Repository ----------------------------------------------------------------


class RepositoryError(StorageError, RuntimeError):
    """Base class for version-control failures."""


class RepositoryNotConfiguredError(RepositoryError):
    """Raised when a repository operation targets a detached workspace."""


class GitCommandError(RepositoryError):
    """Raised when git fails for a reason not covered by a narrower class."""

    def __init__(self, command: str, output: str) -> None:
        self.command = command
        self.output = output
        super().__init__(f"git {command} failed: {output}" if output else f"git {command} failed")


class GitAuthError(GitCommandError):
    """Raised when the remote rejects the supplied credentials."""


class GitConflictError(GitCommandError):
    """Raised on push rejection or merge conflict; never resolved automatically."""


class NetworkError(GitCommandError):
    """Raised when the remote cannot be reached.  Safe to retry later."""


class RepositoryTimeoutError(NetworkError):
    """Raised when a repository operation exceeds its deadline."""

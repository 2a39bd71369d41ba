"""Repository capability interface.

The storage service never shells out to git directly; it talks to a
``Repository`` built by a ``RepositoryFactory`` for one workspace sandbox.
The git CLI implementation lives in ``git.py``; tests substitute in-memory
fakes through the same factory without touching calling code.

Each instance is short-lived: the service builds one per operation from the
workspace's current ``RepositoryConfig``, so credentials never outlive the
call that supplied them.  The interface is async so long-running network
operations can be cancelled by the caller's deadline.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from inkwell.storage.models.repository import PullResult, RepositoryConfig


@runtime_checkable
class Repository(Protocol):
    """Async protocol for driving the version-control working tree of one sandbox.

    Layout::

        {sandbox_root}/.git/    repository metadata (never listed to users)
        {sandbox_root}/...      working tree == user files
    """

    def exists(self) -> bool:
        """Whether repository metadata is present in the sandbox."""
        ...

    async def setup(self) -> None:
        """Verify the remote, then initialise or re-point the local repository.

        Raises ``GitAuthError`` / ``NetworkError`` before changing anything.
        On any later failure the previous state is restored.
        """
        ...

    async def commit(self, message: str, *, author_name: str, author_email: str) -> str | None:
        """Stage all changes and commit.  Returns the hash, or ``None`` if nothing changed."""
        ...

    async def push(self) -> None:
        """Push the current branch.  Raises ``GitConflictError`` if the remote moved on."""
        ...

    async def uncommit(self) -> None:
        """Undo the last local commit, keeping its changes staged."""
        ...

    async def pull(self, *, author_name: str, author_email: str) -> PullResult:
        """Fetch and merge.  On conflict, abort the merge and raise ``GitConflictError``."""
        ...

    async def teardown(self) -> None:
        """Remove repository metadata, leaving user files in place.  No-op if absent."""
        ...


RepositoryFactory = Callable[[Path, RepositoryConfig], Repository]
"""Builds a ``Repository`` for a sandbox root and the workspace's config."""

"""In-process workspace lock registry.

Serializes mutating operations per workspace: a save, a delete and a push on
the same workspace run one after another, while different workspaces never
wait on each other.  Ephemeral -- empty on process restart, nothing is
persisted.

Entries are created lazily on first use and dropped as soon as no holder or
waiter references them.  Losing an entry is always safe: a fresh lock starts
unlocked, and an entry is only dropped when nobody holds it.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import anyio
from loguru import logger

from inkwell.storage.errors import WorkspaceBusyError
from inkwell.storage.fs.paths import WorkspaceKey


@dataclass
class _Entry:
    lock: anyio.Lock = field(default_factory=anyio.Lock)
    refs: int = 0


class WorkspaceLockRegistry:
    """Per-workspace mutual exclusion with a bounded wait.

    All bookkeeping happens on the event loop thread between awaits, so the
    registry dict itself needs no extra lock.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._entries: dict[WorkspaceKey, _Entry] = {}

    # -- Acquire ---------------------------------------------------------------

    @asynccontextmanager
    async def hold(self, key: WorkspaceKey, timeout: float | None = None) -> AsyncIterator[None]:
        """Hold the workspace lock for the body of the ``async with`` block.

        Raises ``WorkspaceBusyError`` if the lock is not acquired within
        *timeout* seconds (default: the registry timeout).  The lock is
        released when the block exits, normally or by exception/cancellation.
        """
        wait = self._timeout if timeout is None else timeout
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.refs += 1

        try:
            try:
                with anyio.fail_after(wait):
                    await entry.lock.acquire()
            except TimeoutError:
                logger.warning("Workspace {} busy: lock not acquired within {}s", key, wait)
                msg = f"Workspace {key} is busy, try again later"
                raise WorkspaceBusyError(msg) from None

            logger.trace("Locks: acquired {}", key)
            try:
                yield
            finally:
                entry.lock.release()
                logger.trace("Locks: released {}", key)
        finally:
            entry.refs -= 1
            if entry.refs == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    # -- Query -----------------------------------------------------------------

    def is_locked(self, key: WorkspaceKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @property
    def active_count(self) -> int:
        """Number of live registry entries (held or awaited locks)."""
        return len(self._entries)

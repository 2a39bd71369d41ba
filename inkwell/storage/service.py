"""Workspace storage service -- the entry point for all storage operations.

``WorkspaceStorage`` is a process-level singleton, created once at startup
(``WorkspaceStorage.from_settings``).  It coordinates four collaborators:

- **WorkspacePaths**: sandbox layout and the path resolver (security boundary)
- **fs helpers**: tree listing, content operations, lookup and stats, run in
  the thread pool so the event loop never blocks on disk I/O
- **WorkspaceLockRegistry**: per-workspace mutual exclusion for mutations
- **RepositoryFactory**: builds a ``Repository`` (git) for a sandbox

Callers pass ``user_id`` / ``workspace_id`` already authorized; ownership is
not re-checked here.  Reads take no lock.  Every mutation and every
repository call holds the workspace lock for its whole duration, so a save
can never interleave with a push on the same workspace.

Cancellation follows anyio semantics: wrap a call in ``anyio.fail_after`` or
``anyio.move_on_after`` to impose a deadline.  Lock waits and git processes
stop immediately; a file write already handed to a worker thread finishes
(atomically) before the cancellation is delivered.  Repository calls also
carry their own ``git_timeout`` deadline.

Repository attachments (the ``RepositoryConfig`` passed to
``setup_repository``) are kept in memory only.  After a restart the caller
re-attaches enabled workspaces from its persisted records.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from pathlib import Path, PurePosixPath
from typing import TypeVar

import anyio
from anyio import to_thread
from loguru import logger

from inkwell.storage.errors import (
    EntryExistsError,
    EntryNotFoundError,
    RepositoryNotConfiguredError,
    RepositoryTimeoutError,
    WorkspaceNotFoundError,
)
from inkwell.storage.fs import content, lookup, stats, tree
from inkwell.storage.fs.paths import WorkspaceKey, WorkspacePaths
from inkwell.storage.locks import WorkspaceLockRegistry
from inkwell.storage.models.enums import FileAction, RepositoryState
from inkwell.storage.models.files import FileCountStats, FileNode, UploadBatch, UploadFile
from inkwell.storage.models.repository import CommitResult, PullResult, RepositoryConfig
from inkwell.storage.settings import InkwellSettings
from inkwell.storage.vcs.base import Repository, RepositoryFactory
from inkwell.storage.vcs.git import make_git_factory
from inkwell.storage.vcs.message import render_commit_message

T = TypeVar("T")

UserId = int | str
WorkspaceId = int | str


class WorkspaceStorage:
    """File storage and repository synchronization for all workspaces."""

    def __init__(
        self,
        paths: WorkspacePaths,
        *,
        repository_factory: RepositoryFactory | None = None,
        locks: WorkspaceLockRegistry | None = None,
        git_timeout: float = 120.0,
        commit_author_name: str = "Inkwell",
        commit_author_email: str = "inkwell@localhost",
        commit_message_template: str = "${action} ${filename}",
    ) -> None:
        self._paths = paths
        self._repository_factory = repository_factory or make_git_factory()
        self._locks = locks or WorkspaceLockRegistry()
        self._git_timeout = git_timeout
        self._author = (commit_author_name, commit_author_email)
        self._default_template = commit_message_template

        self._attached: dict[WorkspaceKey, RepositoryConfig] = {}
        self._configuring: set[WorkspaceKey] = set()

    @classmethod
    def from_settings(
        cls,
        settings: InkwellSettings,
        *,
        repository_factory: RepositoryFactory | None = None,
    ) -> WorkspaceStorage:
        factory = repository_factory or make_git_factory(
            git_binary=settings.git_binary,
            default_branch=settings.default_branch,
        )
        return cls(
            WorkspacePaths(data_root=Path(settings.data_root), prefix=settings.data_prefix),
            repository_factory=factory,
            locks=WorkspaceLockRegistry(timeout=settings.lock_timeout),
            git_timeout=settings.git_timeout,
            commit_author_name=settings.commit_author_name,
            commit_author_email=settings.commit_author_email,
            commit_message_template=settings.commit_message_template,
        )

    @property
    def locks(self) -> WorkspaceLockRegistry:
        return self._locks

    # -- Paths -----------------------------------------------------------------

    def workspace_path(self, user_id: UserId, workspace_id: WorkspaceId) -> Path:
        """Sandbox root of a workspace (may not exist yet)."""
        return self._paths.root(WorkspaceKey.of(user_id, workspace_id))

    def resolve(self, user_id: UserId, workspace_id: WorkspaceId, path: str) -> Path:
        """Validate a workspace-relative path.  Raises ``PathTraversalError``."""
        return self._paths.resolve(WorkspaceKey.of(user_id, workspace_id), path)

    # -- Workspace lifecycle ---------------------------------------------------

    async def initialize_workspace(self, user_id: UserId, workspace_id: WorkspaceId) -> Path:
        """Create the sandbox directory (idempotent)."""
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            root = await to_thread.run_sync(partial(self._paths.ensure_root, key))
        logger.info("Workspace initialised: {}", key)
        return root

    async def delete_workspace(self, user_id: UserId, workspace_id: WorkspaceId) -> None:
        """Remove the sandbox with all its files and repository metadata.  No-op if absent."""
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            self._attached.pop(key, None)
            await to_thread.run_sync(partial(content.remove_tree, self._paths.root(key)))
        logger.info("Workspace deleted: {}", key)

    # -- Reads -----------------------------------------------------------------

    async def list_files(self, user_id: UserId, workspace_id: WorkspaceId) -> list[FileNode]:
        """Hierarchical listing of the workspace, folders first."""
        key = WorkspaceKey.of(user_id, workspace_id)
        return await to_thread.run_sync(partial(tree.list_tree, self._paths.root(key)))

    async def find_by_name(self, user_id: UserId, workspace_id: WorkspaceId, needle: str) -> list[str]:
        """Paths whose file name matches ``needle`` (case-insensitive).  ``[]`` if none."""
        key = WorkspaceKey.of(user_id, workspace_id)
        return await to_thread.run_sync(partial(lookup.find_by_name, self._paths.root(key), needle))

    async def get_file_content(self, user_id: UserId, workspace_id: WorkspaceId, path: str) -> bytes:
        key = WorkspaceKey.of(user_id, workspace_id)
        target = self._paths.resolve(key, path)
        return await to_thread.run_sync(partial(content.read_file, target))

    async def validate_last_opened_path(self, user_id: UserId, workspace_id: WorkspaceId, path: str) -> str:
        """Check a "last opened file" path before the caller persists it.

        Returns the normalized relative path (``""`` clears the value).
        Raises ``PathTraversalError`` for paths outside the sandbox and
        ``EntryNotFoundError`` if no such file exists.
        """
        if not path:
            return ""
        key = WorkspaceKey.of(user_id, workspace_id)
        resolved = self._paths.resolve(key, path)
        target = self._paths.resolve(key, path, follow_final=False)
        is_file = await to_thread.run_sync(resolved.is_file)
        if not is_file:
            msg = f"File not found: {path}"
            raise EntryNotFoundError(msg)
        return self._paths.relative(key, target)

    async def get_stats(self, user_id: UserId, workspace_id: WorkspaceId) -> FileCountStats:
        """File count and total size of one workspace (``.git`` excluded)."""
        key = WorkspaceKey.of(user_id, workspace_id)
        root = self._paths.root(key)
        if not await to_thread.run_sync(root.is_dir):
            msg = f"Workspace directory does not exist: {key}"
            raise WorkspaceNotFoundError(msg)
        return await to_thread.run_sync(partial(stats.collect_stats, root))

    async def get_total_stats(self) -> FileCountStats:
        """File count and total size across every workspace."""
        return await to_thread.run_sync(partial(stats.collect_stats, self._paths.base))

    # -- Mutations -------------------------------------------------------------

    async def save_file(
        self,
        user_id: UserId,
        workspace_id: WorkspaceId,
        path: str,
        data: bytes,
        *,
        action: FileAction | None = None,
    ) -> CommitResult | None:
        """Write ``data`` to ``path`` atomically, creating parent folders.

        ``action`` defaults to ``create`` or ``update`` depending on whether
        the file existed.  Returns the auto-commit result when the workspace
        repository has auto-commit enabled, else ``None``.
        """
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            target = self._paths.resolve(key, path)
            existed = await to_thread.run_sync(partial(_write_reporting_existence, target, data))
            rel = self._paths.relative(key, target)
            logger.debug("File saved: {} (workspace={}, size={})", rel, key, len(data))
            if action is None:
                action = FileAction.UPDATE if existed else FileAction.CREATE
            return await self._auto_commit(key, action, [rel])

    async def delete_file(self, user_id: UserId, workspace_id: WorkspaceId, path: str) -> CommitResult | None:
        """Delete a file or a folder with its subtree.  Raises ``EntryNotFoundError`` if absent."""
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            target = self._paths.resolve(key, path, follow_final=False)
            rel = self._paths.relative(key, target)
            await to_thread.run_sync(partial(content.delete_entry, target, root=self._paths.root(key)))
            logger.debug("File deleted: {} (workspace={})", rel, key)
            return await self._auto_commit(key, FileAction.DELETE, [rel])

    async def move_file(
        self,
        user_id: UserId,
        workspace_id: WorkspaceId,
        src: str,
        dest: str,
        *,
        overwrite: bool = False,
    ) -> CommitResult | None:
        """Move or rename an entry.  Both paths are validated independently.

        Raises ``EntryNotFoundError`` if ``src`` is missing and
        ``EntryExistsError`` if ``dest`` exists and ``overwrite`` is false.
        """
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            src_path = self._paths.resolve(key, src, follow_final=False)
            dest_path = self._paths.resolve(key, dest, follow_final=False)
            await to_thread.run_sync(
                partial(content.move_entry, src_path, dest_path, root=self._paths.root(key), overwrite=overwrite)
            )
            src_rel = self._paths.relative(key, src_path)
            dest_rel = self._paths.relative(key, dest_path)
            logger.debug("File moved: {} -> {} (workspace={})", src_rel, dest_rel, key)
            same_folder = PurePosixPath(src_rel).parent == PurePosixPath(dest_rel).parent
            action = FileAction.RENAME if same_folder else FileAction.MOVE
            return await self._auto_commit(key, action, [f"{src_rel} -> {dest_rel}"])

    async def upload_files(
        self,
        user_id: UserId,
        workspace_id: WorkspaceId,
        directory: str,
        files: Sequence[UploadFile],
    ) -> UploadBatch:
        """Write a batch of files under ``directory``, continuing past per-file failures.

        The directory is validated once; each file's final path is validated
        again since names may carry sub-folders.  One auto-commit covers the
        whole batch.
        """
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            target_dir = self._paths.resolve(key, directory)
            if await to_thread.run_sync(target_dir.is_file):
                msg = f"Upload target is a file: {directory}"
                raise EntryExistsError(msg)
            results = await to_thread.run_sync(
                partial(
                    content.bulk_upload,
                    target_dir,
                    list(files),
                    partial(self._paths.resolve, key),
                    partial(self._paths.relative, key),
                )
            )
            batch = UploadBatch(results=results)
            logger.debug(
                "Upload into {} (workspace={}): {} ok, {} failed",
                directory or "/",
                key,
                len(batch.uploaded),
                len(batch.failed),
            )
            if batch.uploaded:
                batch.commit = await self._auto_commit(key, FileAction.UPLOAD, batch.uploaded)
            return batch

    # -- Repository ------------------------------------------------------------

    def repository_state(self, user_id: UserId, workspace_id: WorkspaceId) -> RepositoryState:
        key = WorkspaceKey.of(user_id, workspace_id)
        if key in self._configuring:
            return RepositoryState.CONFIGURING
        if key in self._attached:
            return RepositoryState.ATTACHED
        return RepositoryState.DETACHED

    async def setup_repository(
        self,
        user_id: UserId,
        workspace_id: WorkspaceId,
        config: RepositoryConfig,
    ) -> RepositoryState:
        """Attach (or re-point) the workspace's remote repository.

        The remote is probed with the supplied credentials before anything
        changes on disk, so ``GitAuthError`` / ``NetworkError`` leave the
        previous attachment state untouched.
        """
        if not config.remote_url:
            msg = "Repository remote URL is required"
            raise ValueError(msg)

        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            root = await to_thread.run_sync(partial(self._paths.ensure_root, key))
            repo = self._repository_factory(root, config)
            self._configuring.add(key)
            try:
                await self._with_deadline("setup", repo.setup)
            except BaseException:
                logger.warning("Repository setup failed for {} (remote={})", key, config.remote_url)
                raise
            finally:
                self._configuring.discard(key)
            self._attached[key] = config

        logger.info("Repository attached: {} (remote={})", key, config.remote_url)
        return RepositoryState.ATTACHED

    async def disable_repository(self, user_id: UserId, workspace_id: WorkspaceId) -> None:
        """Detach the remote and remove ``.git``.  User files stay; idempotent."""
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            config = self._attached.pop(key, None) or RepositoryConfig()
            repo = self._repository_factory(self._paths.root(key), config)
            if await to_thread.run_sync(repo.exists):
                await repo.teardown()
                logger.info("Repository detached: {}", key)

    async def apply_repository_config(
        self,
        user_id: UserId,
        workspace_id: WorkspaceId,
        config: RepositoryConfig,
        previous: RepositoryConfig | None = None,
    ) -> RepositoryState:
        """Reconcile the attachment with updated workspace settings.

        Runs setup or disable only when the remote, credentials, author or
        enabled flag changed; otherwise just refreshes the in-memory template
        and auto-commit flag.
        """
        key = WorkspaceKey.of(user_id, workspace_id)
        previous = previous or self._attached.get(key) or RepositoryConfig()
        if config.changes_repository(previous) or (config.enabled and key not in self._attached):
            if config.enabled:
                return await self.setup_repository(user_id, workspace_id, config)
            await self.disable_repository(user_id, workspace_id)
            return RepositoryState.DETACHED
        if config.enabled:
            self._attached[key] = config
        return self.repository_state(user_id, workspace_id)

    async def commit_and_push(self, user_id: UserId, workspace_id: WorkspaceId, message: str) -> CommitResult:
        """Stage everything, commit and push.

        Returns ``CommitResult(nothing_to_commit=True)`` when the working tree
        is clean.  A rejected push raises ``GitConflictError`` and undoes the
        local commit; the user must pull first.
        """
        if not message.strip():
            msg = "Commit message is required"
            raise ValueError(msg)
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            config = self._require_attached(key)
            return await self._commit_and_push(key, config, message)

    async def pull(self, user_id: UserId, workspace_id: WorkspaceId) -> PullResult:
        """Fetch and merge remote changes.  Conflicts abort the merge and raise ``GitConflictError``."""
        key = WorkspaceKey.of(user_id, workspace_id)
        async with self._locks.hold(key):
            config = self._require_attached(key)
            repo = self._repository_factory(self._paths.root(key), config)
            name, email = self._identity(config)
            result = await self._with_deadline("pull", partial(repo.pull, author_name=name, author_email=email))
        logger.info("Pulled {} (updated={})", key, result.updated)
        return result

    # -- Internals -------------------------------------------------------------

    def _require_attached(self, key: WorkspaceKey) -> RepositoryConfig:
        config = self._attached.get(key)
        if config is None:
            msg = f"Git is not configured for workspace {key}"
            raise RepositoryNotConfiguredError(msg)
        return config

    def _identity(self, config: RepositoryConfig) -> tuple[str, str]:
        return (
            config.commit_author_name or self._author[0],
            config.commit_author_email or self._author[1],
        )

    async def _with_deadline(self, command: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            with anyio.fail_after(self._git_timeout):
                return await fn()
        except TimeoutError as exc:
            msg = f"timed out after {self._git_timeout}s"
            raise RepositoryTimeoutError(command, msg) from exc

    async def _commit_and_push(self, key: WorkspaceKey, config: RepositoryConfig, message: str) -> CommitResult:
        """Commit + push under an already-held lock."""
        repo: Repository = self._repository_factory(self._paths.root(key), config)
        name, email = self._identity(config)

        async def run() -> CommitResult:
            commit_hash = await repo.commit(message, author_name=name, author_email=email)
            if commit_hash is None:
                return CommitResult(nothing_to_commit=True, message=message)
            try:
                await repo.push()
            except BaseException:
                # Keep the workspace as it was before the call: changes staged, no commit.
                with anyio.CancelScope(shield=True):
                    await repo.uncommit()
                raise
            return CommitResult(commit_hash=commit_hash, message=message)

        result = await self._with_deadline("commit", run)
        if result.nothing_to_commit:
            logger.info("Nothing to commit in {}", key)
        else:
            logger.info("Committed and pushed {} in {}", result.commit_hash, key)
        return result

    async def _auto_commit(self, key: WorkspaceKey, action: FileAction, filenames: list[str]) -> CommitResult | None:
        config = self._attached.get(key)
        if config is None or not config.auto_commit:
            return None
        template = config.commit_message_template or self._default_template
        message = render_commit_message(template, action, filenames)
        return await self._commit_and_push(key, config, message)


def _write_reporting_existence(target: Path, data: bytes) -> bool:
    existed = target.exists()
    content.atomic_write(target, data)
    return existed

"""Fixtures for storage core tests: a service over ``tmp_path`` and a fake repository."""

from __future__ import annotations

import shutil
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

import anyio
import pytest

from inkwell.storage.fs.paths import WorkspacePaths
from inkwell.storage.locks import WorkspaceLockRegistry
from inkwell.storage.models.repository import PullResult, RepositoryConfig
from inkwell.storage.service import WorkspaceStorage


@dataclass
class FakeRemote:
    """State shared by every ``FakeRepository`` a factory builds.

    Tests script failures by setting the ``*_error`` fields and inspect the
    ``calls`` / ``commits`` logs afterwards.
    """

    setup_error: Exception | None = None
    push_error: Exception | None = None
    pull_error: Exception | None = None
    setup_delay: float = 0.0
    clean: bool = False
    calls: list[str] = field(default_factory=list)
    commits: list[str] = field(default_factory=list)
    authors: list[tuple[str, str]] = field(default_factory=list)
    configs: list[RepositoryConfig] = field(default_factory=list)
    setup_started: anyio.Event | None = None
    commit_hook: Callable[[Path], Awaitable[None]] | None = None

    def factory(self, work_tree: Path, config: RepositoryConfig) -> FakeRepository:
        self.configs.append(config)
        return FakeRepository(self, work_tree)


class FakeRepository:
    """In-memory ``Repository``; only ``.git`` presence is mirrored on disk."""

    def __init__(self, remote: FakeRemote, work_tree: Path) -> None:
        self._remote = remote
        self._work_tree = work_tree
        self._git_dir = work_tree / ".git"

    def exists(self) -> bool:
        return self._git_dir.is_dir()

    async def setup(self) -> None:
        self._remote.calls.append("setup")
        if self._remote.setup_started is not None:
            self._remote.setup_started.set()
        if self._remote.setup_delay:
            await anyio.sleep(self._remote.setup_delay)
        if self._remote.setup_error is not None:
            raise self._remote.setup_error
        self._git_dir.mkdir(exist_ok=True)

    async def commit(self, message: str, *, author_name: str, author_email: str) -> str | None:
        self._remote.calls.append("commit")
        if self._remote.commit_hook is not None:
            await self._remote.commit_hook(self._work_tree)
        if self._remote.clean:
            return None
        self._remote.commits.append(message)
        self._remote.authors.append((author_name, author_email))
        return f"c{len(self._remote.commits)}"

    async def push(self) -> None:
        self._remote.calls.append("push")
        if self._remote.push_error is not None:
            raise self._remote.push_error

    async def uncommit(self) -> None:
        self._remote.calls.append("uncommit")
        self._remote.commits.pop()

    async def pull(self, *, author_name: str, author_email: str) -> PullResult:
        self._remote.calls.append("pull")
        if self._remote.pull_error is not None:
            raise self._remote.pull_error
        return PullResult(updated=True, head="remote-head")

    async def teardown(self) -> None:
        self._remote.calls.append("teardown")
        shutil.rmtree(self._git_dir, ignore_errors=True)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def paths(tmp_path: Path) -> WorkspacePaths:
    return WorkspacePaths(data_root=tmp_path)


@pytest.fixture
def storage(paths: WorkspacePaths, remote: FakeRemote) -> WorkspaceStorage:
    return WorkspaceStorage(
        paths,
        repository_factory=remote.factory,
        locks=WorkspaceLockRegistry(timeout=5.0),
        git_timeout=5.0,
    )


@pytest.fixture
def repo_config() -> RepositoryConfig:
    return RepositoryConfig(
        enabled=True,
        remote_url="https://git.example.com/alice/notes.git",
        username="alice",
        token="s3cret",
    )

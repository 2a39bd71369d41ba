"""Git CLI implementation of the ``Repository`` protocol.

Drives the ``git`` executable as a subprocess through ``anyio``, so every
invocation is cancellable: when the caller's cancel scope fires (deadline or
explicit cancel) the child process is killed and any half-finished step is
rolled back under a shielded scope.

Credentials
-----------

HTTP credentials are handed to git per invocation through environment-scoped
config (``GIT_CONFIG_COUNT`` / ``http.extraHeader``).  They never appear in
the process arguments, are never written to ``.git/config`` and never reach a
credential helper.  The remote URL stored in the repository is the bare URL
the user configured.

Error mapping
-------------

git reports failures as text on stderr (stdout for merge conflicts).  The
process runs with ``LC_ALL=C`` so messages are stable, and ``_classify``
maps them onto ``GitAuthError``, ``GitConflictError``, ``NetworkError`` or
the generic ``GitCommandError``.
"""

from __future__ import annotations

import base64
import contextlib
import os
import shutil
import subprocess
from dataclasses import dataclass
from functools import partial
from pathlib import Path

import anyio
from anyio import to_thread
from anyio.abc import ByteReceiveStream
from loguru import logger

from inkwell.storage.errors import (
    GitAuthError,
    GitCommandError,
    GitConflictError,
    NetworkError,
)
from inkwell.storage.models.repository import PullResult, RepositoryConfig
from inkwell.storage.vcs.base import RepositoryFactory

REMOTE = "origin"

# Checked in this order; the first family with a matching marker wins.
_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "terminal prompts disabled",
    "repository not found",
    "returned error: 401",
    "returned error: 403",
    "permission denied (publickey)",
)
_CONFLICT_MARKERS = (
    "conflict",
    "automatic merge failed",
    "[rejected]",
    "non-fast-forward",
    "fetch first",
    "would be overwritten",
    "unmerged files",
    "refusing to merge unrelated histories",
)
_NETWORK_MARKERS = (
    "could not resolve host",
    "could not resolve proxy",
    "failed to connect",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "network is unreachable",
    "unable to access",
    "could not read from remote repository",
    "does not appear to be a git repository",
    "early eof",
    "ssl certificate",
)


@dataclass(frozen=True)
class GitResult:
    """Completed git invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stderr.strip(), self.stdout.strip()) if part)


@dataclass(frozen=True)
class RemoteInfo:
    """What ``ls-remote`` revealed about the remote before any local change."""

    branch: str | None
    empty: bool


def _classify(command: str, result: GitResult) -> GitCommandError:
    text = result.output.lower()
    for markers, error_cls in (
        (_AUTH_MARKERS, GitAuthError),
        (_CONFLICT_MARKERS, GitConflictError),
        (_NETWORK_MARKERS, NetworkError),
    ):
        if any(marker in text for marker in markers):
            return error_cls(command, result.output)
    return GitCommandError(command, result.output)


def _auth_header(username: str, token: str) -> str:
    raw = f"{username or 'git'}:{token}".encode()
    return "Authorization: Basic " + base64.b64encode(raw).decode("ascii")


class GitRepository:
    """``Repository`` backed by the git CLI, for one sandbox root."""

    def __init__(
        self,
        work_tree: Path,
        config: RepositoryConfig,
        *,
        git_binary: str = "git",
        default_branch: str = "main",
    ) -> None:
        self._work_tree = work_tree
        self._config = config
        self._git_binary = git_binary
        self._default_branch = default_branch

    @property
    def git_dir(self) -> Path:
        return self._work_tree / ".git"

    def exists(self) -> bool:
        return self.git_dir.is_dir()

    # -- Process ---------------------------------------------------------------

    def _env(self, *, auth: bool, identity: tuple[str, str] | None) -> dict[str, str]:
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["LC_ALL"] = "C"
        if auth and self._config.has_credentials:
            env["GIT_CONFIG_COUNT"] = "1"
            env["GIT_CONFIG_KEY_0"] = "http.extraHeader"
            env["GIT_CONFIG_VALUE_0"] = _auth_header(self._config.username, self._config.token.get_secret_value())
        if identity is not None:
            name, email = identity
            env["GIT_AUTHOR_NAME"] = env["GIT_COMMITTER_NAME"] = name
            env["GIT_AUTHOR_EMAIL"] = env["GIT_COMMITTER_EMAIL"] = email
        return env

    async def _git(
        self,
        *args: str,
        check: bool = True,
        auth: bool = False,
        identity: tuple[str, str] | None = None,
    ) -> GitResult:
        """Run one git command in the work tree.

        Raises a classified ``GitCommandError`` on non-zero exit when *check*.
        If the surrounding scope is cancelled the process is killed before
        the cancellation propagates.
        """
        command = [self._git_binary, *args]
        logger.trace("git {} (cwd={})", " ".join(args), self._work_tree)
        chunks: dict[str, bytearray] = {"stdout": bytearray(), "stderr": bytearray()}

        async def drain(stream: ByteReceiveStream, name: str) -> None:
            async for chunk in stream:
                chunks[name].extend(chunk)

        try:
            process = await anyio.open_process(
                command,
                stdin=subprocess.DEVNULL,
                cwd=self._work_tree,
                env=self._env(auth=auth, identity=identity),
            )
        except FileNotFoundError as exc:
            msg = f"git executable not found: {self._git_binary}"
            raise GitCommandError(args[0], msg) from exc

        async with process:
            try:
                async with anyio.create_task_group() as tg:
                    if process.stdout is not None:
                        tg.start_soon(drain, process.stdout, "stdout")
                    if process.stderr is not None:
                        tg.start_soon(drain, process.stderr, "stderr")
                    await process.wait()
            except BaseException:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                raise

        result = GitResult(
            returncode=process.returncode if process.returncode is not None else 1,
            stdout=chunks["stdout"].decode("utf-8", errors="replace"),
            stderr=chunks["stderr"].decode("utf-8", errors="replace"),
        )
        if check and result.returncode != 0:
            raise _classify(args[0], result)
        return result

    # -- Setup -----------------------------------------------------------------

    async def probe_remote(self) -> RemoteInfo:
        """Contact the remote with the configured credentials.

        Touches nothing locally, so an auth or network failure here leaves the
        workspace exactly as it was.
        """
        result = await self._git("ls-remote", "--symref", self._config.remote_url, "HEAD", auth=True)
        branch: str | None = None
        empty = True
        for line in result.stdout.splitlines():
            ref, _, name = line.partition("\t")
            if name != "HEAD":
                continue
            if ref.startswith("ref: refs/heads/"):
                branch = ref.removeprefix("ref: refs/heads/")
            elif ref:
                empty = False
        return RemoteInfo(branch=branch, empty=empty)

    async def setup(self) -> None:
        remote = await self.probe_remote()

        if self.exists():
            await self._point_remote()
            logger.info("Repository remote updated in {}", self._work_tree)
            return

        branch = remote.branch or self._default_branch
        try:
            await self._git("init", "-q", f"--initial-branch={branch}")
            await self._git("remote", "add", REMOTE, self._config.remote_url)
            if not remote.empty:
                await self._git("fetch", "-q", REMOTE, auth=True)
                await self._git("checkout", "-q", "-B", branch, "--track", f"{REMOTE}/{branch}")
        except BaseException:
            # No partial attach: drop the metadata this call created.
            with anyio.CancelScope(shield=True):
                await to_thread.run_sync(partial(shutil.rmtree, self.git_dir, ignore_errors=True))
            raise
        logger.info("Repository initialised in {} (branch={}, empty_remote={})", self._work_tree, branch, remote.empty)

    async def _point_remote(self) -> None:
        current = await self._git("remote", "get-url", REMOTE, check=False)
        if current.returncode == 0:
            await self._git("remote", "set-url", REMOTE, self._config.remote_url)
        else:
            await self._git("remote", "add", REMOTE, self._config.remote_url)

    # -- Commit / push ---------------------------------------------------------

    async def current_branch(self) -> str:
        result = await self._git("symbolic-ref", "--short", "-q", "HEAD")
        return result.stdout.strip()

    async def head(self) -> str | None:
        result = await self._git("rev-parse", "--verify", "-q", "HEAD", check=False)
        return result.stdout.strip() if result.returncode == 0 else None

    async def commit(self, message: str, *, author_name: str, author_email: str) -> str | None:
        try:
            await self._git("add", "-A")
            staged = await self._git("diff", "--cached", "--quiet", check=False)
            if staged.returncode == 0:
                return None
            if staged.returncode != 1:
                raise _classify("diff", staged)
            await self._git("commit", "-q", "--no-verify", "-m", message, identity=(author_name, author_email))
        except BaseException:
            with anyio.CancelScope(shield=True):
                await to_thread.run_sync(self._clear_stale_index_lock)
            raise
        head = await self.head()
        logger.info("Committed {} in {}", head, self._work_tree)
        return head

    async def push(self) -> None:
        branch = await self.current_branch()
        await self._git("push", "-q", REMOTE, f"HEAD:refs/heads/{branch}", auth=True)
        logger.info("Pushed {} to {}", branch, REMOTE)

    async def uncommit(self) -> None:
        parent = await self._git("rev-parse", "--verify", "-q", "HEAD~1", check=False)
        if parent.returncode == 0:
            await self._git("reset", "-q", "--soft", "HEAD~1")
        else:
            # Root commit: back to an unborn branch, index kept.
            await self._git("update-ref", "-d", "HEAD")
        logger.info("Local commit undone in {}", self._work_tree)

    # -- Pull ------------------------------------------------------------------

    async def pull(self, *, author_name: str, author_email: str) -> PullResult:
        branch = await self.current_branch()
        await self._git("fetch", "-q", REMOTE, auth=True)

        remote_ref = f"refs/remotes/{REMOTE}/{branch}"
        found = await self._git("rev-parse", "--verify", "-q", remote_ref, check=False)
        before = await self.head()
        if found.returncode != 0:
            return PullResult(updated=False, head=before)

        try:
            merged = await self._git(
                "merge", "--no-edit", remote_ref, check=False, identity=(author_name, author_email)
            )
        except BaseException:
            with anyio.CancelScope(shield=True):
                await self._abort_merge()
            raise

        if merged.returncode != 0:
            with anyio.CancelScope(shield=True):
                await self._abort_merge()
            raise _classify("merge", merged)

        after = await self.head()
        logger.info("Pulled {} into {} ({} -> {})", remote_ref, self._work_tree, before, after)
        return PullResult(updated=after != before, head=after)

    async def _abort_merge(self) -> None:
        if (self.git_dir / "MERGE_HEAD").exists():
            await self._git("merge", "--abort", check=False)
        await to_thread.run_sync(self._clear_stale_index_lock)

    # -- Teardown --------------------------------------------------------------

    async def teardown(self) -> None:
        if not self.exists():
            return
        await to_thread.run_sync(partial(shutil.rmtree, self.git_dir))
        logger.info("Repository metadata removed from {}", self._work_tree)

    def _clear_stale_index_lock(self) -> None:
        """Remove ``index.lock`` left behind by a killed git process.

        Only safe because the caller holds the workspace lock, so no other
        git process can be running in this work tree.
        """
        with contextlib.suppress(FileNotFoundError):
            (self.git_dir / "index.lock").unlink()


def make_git_factory(*, git_binary: str = "git", default_branch: str = "main") -> RepositoryFactory:
    """Return a ``RepositoryFactory`` producing ``GitRepository`` instances."""

    def factory(work_tree: Path, config: RepositoryConfig) -> GitRepository:
        return GitRepository(work_tree, config, git_binary=git_binary, default_branch=default_branch)

    return factory

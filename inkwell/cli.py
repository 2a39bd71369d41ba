import json
from collections.abc import Awaitable, Callable
from typing import TypeVar

import anyio
import click

from inkwell.storage.errors import StorageError
from inkwell.storage.log import setup_logging
from inkwell.storage.service import WorkspaceStorage
from inkwell.storage.settings import get_settings

T = TypeVar("T")


def _storage() -> WorkspaceStorage:
    settings = get_settings()
    try:
        setup_logging(settings.log_level)
    except ValueError as exc:
        raise click.ClickException(f"Invalid log level: {settings.log_level}") from exc
    return WorkspaceStorage.from_settings(settings)


def _run(fn: Callable[..., Awaitable[T]], *args: object) -> T:
    """Run one storage call on a fresh event loop, reporting domain errors as CLI errors."""
    try:
        return anyio.run(fn, *args)
    except (StorageError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@click.group()
def main() -> None:
    """Inkwell - workspace file storage with git synchronization."""


@main.command()
@click.argument("user_id")
@click.argument("workspace_id")
def init(user_id: str, workspace_id: str) -> None:
    """Create the sandbox directory of a workspace."""
    storage = _storage()
    root = _run(storage.initialize_workspace, user_id, workspace_id)
    _echo_json({"path": str(root)})


@main.command()
@click.argument("user_id")
@click.argument("workspace_id")
def tree(user_id: str, workspace_id: str) -> None:
    """Print the file tree of a workspace."""
    storage = _storage()
    nodes = _run(storage.list_files, user_id, workspace_id)
    _echo_json([node.model_dump() for node in nodes])


@main.command()
@click.argument("user_id")
@click.argument("workspace_id")
@click.argument("needle")
def find(user_id: str, workspace_id: str, needle: str) -> None:
    """Find files by name (case-insensitive)."""
    storage = _storage()
    _echo_json(_run(storage.find_by_name, user_id, workspace_id, needle))


@main.command()
@click.argument("user_id", required=False)
@click.argument("workspace_id", required=False)
def stats(user_id: str | None, workspace_id: str | None) -> None:
    """Print file count and size of one workspace, or of all workspaces."""
    if (user_id is None) != (workspace_id is None):
        raise click.UsageError("Pass both USER_ID and WORKSPACE_ID, or neither.")

    storage = _storage()
    if user_id is None:
        result = _run(storage.get_total_stats)
    else:
        result = _run(storage.get_stats, user_id, workspace_id)
    _echo_json(result.model_dump())


if __name__ == "__main__":
    main()

"""File content operations on already-resolved sandbox paths.

Every function here takes absolute paths that have passed through
``WorkspacePaths.resolve``; none of them re-validate.  They are synchronous
and meant to run in the thread pool via ``anyio.to_thread.run_sync``.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed over the target.  A crash or a concurrent reader never observes
a partially written file.

``OSError`` from the disk is surfaced as ``StorageIOError`` (never retried);
missing entries as ``EntryNotFoundError``; occupied destinations as
``EntryExistsError``.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import tempfile
from collections.abc import Callable
from pathlib import Path

from inkwell.storage.errors import EntryExistsError, EntryNotFoundError, InvalidPathError, StorageIOError
from inkwell.storage.models.files import UploadFile, UploadResult

# The umask can only be read by setting it, so read it once at import.
_UMASK = os.umask(0)
os.umask(_UMASK)
_NEW_FILE_MODE = 0o666 & ~_UMASK


def read_file(path: Path) -> bytes:
    """Read file contents.  Raises ``EntryNotFoundError`` if missing or a directory."""
    try:
        return path.read_bytes()
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        msg = f"File not found: {path.name}"
        raise EntryNotFoundError(msg) from None
    except OSError as exc:
        msg = f"Failed to read {path.name}: {exc.strerror or exc}"
        raise StorageIOError(msg) from exc


def atomic_write(path: Path, data: bytes) -> None:
    """Write data atomically: temp file + rename.

    Creates parent directories as needed.  Raises ``EntryExistsError`` if
    ``path`` is a directory.
    """
    if path.is_dir():
        msg = f"A folder already exists at {path.name}"
        raise EntryExistsError(msg)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except (FileNotFoundError, NotADirectoryError):
        mode = _NEW_FILE_MODE
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".inkwell-", suffix=".tmp")
    except (FileExistsError, NotADirectoryError):
        msg = f"A file is in the way of folder {path.parent.name}"
        raise EntryExistsError(msg) from None
    except OSError as exc:
        msg = f"Failed to write {path.name}: {exc.strerror or exc}"
        raise StorageIOError(msg) from exc

    try:
        with os.fdopen(fd, "wb") as f:
            # mkstemp creates 0600; keep the existing mode or apply the umask default.
            os.fchmod(f.fileno(), mode)
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException as exc:
        # Clean up temp file on any failure.
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        if isinstance(exc, OSError):
            msg = f"Failed to write {path.name}: {exc.strerror or exc}"
            raise StorageIOError(msg) from exc
        raise


def delete_entry(path: Path, *, root: Path) -> None:
    """Delete a file, or a folder with its whole subtree.

    Raises ``EntryNotFoundError`` if absent.  The sandbox root itself cannot
    be deleted through this call.
    """
    if path == root.resolve():
        msg = "Cannot delete the workspace root"
        raise InvalidPathError(msg)
    if not path.exists() and not path.is_symlink():
        msg = f"File not found: {path.name}"
        raise EntryNotFoundError(msg)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except FileNotFoundError:
        msg = f"File not found: {path.name}"
        raise EntryNotFoundError(msg) from None
    except OSError as exc:
        msg = f"Failed to delete {path.name}: {exc.strerror or exc}"
        raise StorageIOError(msg) from exc


def move_entry(src: Path, dest: Path, *, root: Path, overwrite: bool = False) -> None:
    """Move or rename ``src`` to ``dest`` within one sandbox.

    Raises ``EntryNotFoundError`` if ``src`` is absent and ``EntryExistsError``
    if ``dest`` exists and ``overwrite`` is false.  An existing folder at
    ``dest`` is always a conflict; only files are replaced.  Symlinks are
    moved as links; their targets stay where they are.
    """
    real_root = root.resolve()
    if real_root in (src, dest):
        msg = "Cannot move the workspace root"
        raise InvalidPathError(msg)
    if not src.exists() and not src.is_symlink():
        msg = f"File not found: {src.name}"
        raise EntryNotFoundError(msg)
    if src == dest:
        return
    if src.is_dir() and not src.is_symlink() and dest.is_relative_to(src):
        msg = "Cannot move a folder into itself"
        raise InvalidPathError(msg)
    if dest.exists() or dest.is_symlink():
        if not overwrite or (dest.is_dir() and not dest.is_symlink()):
            msg = f"Destination already exists: {dest.name}"
            raise EntryExistsError(msg)
        if src.is_dir() and not src.is_symlink():
            msg = f"Cannot replace file {dest.name} with a folder"
            raise EntryExistsError(msg)

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        os.replace(src, dest)
    except OSError as exc:
        msg = f"Failed to move {src.name}: {exc.strerror or exc}"
        raise StorageIOError(msg) from exc


def bulk_upload(
    directory: Path,
    files: list[UploadFile],
    resolve: Callable[[str], Path],
    relative: Callable[[Path], str],
) -> list[UploadResult]:
    """Write each uploaded file under ``directory``; continue past failures.

    ``directory`` is validated once by the caller.  ``resolve`` re-validates
    each final path (file names come from the client and may contain
    sub-folders or ``..``) and ``relative`` renders it for the result list.
    Independent files have no transactional relationship, so one bad file
    never aborts the batch.
    """
    results: list[UploadResult] = []
    base = relative(directory)
    for upload in files:
        requested = f"{base}/{upload.name}" if base else upload.name
        try:
            target = resolve(requested)
            if target == directory:
                msg = "Upload needs a file name"
                raise InvalidPathError(msg)
            atomic_write(target, upload.content)
        except (InvalidPathError, EntryExistsError, StorageIOError) as exc:
            results.append(UploadResult(path=requested, success=False, error=str(exc)))
        else:
            results.append(UploadResult(path=relative(target), success=True))
    return results


def ensure_directory(path: Path) -> None:
    """Create a folder (and parents).  Raises ``EntryExistsError`` if a file is in the way."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except FileExistsError:
        msg = f"A file already exists at {path.name}"
        raise EntryExistsError(msg) from None
    except OSError as exc:
        msg = f"Failed to create {path.name}: {exc.strerror or exc}"
        raise StorageIOError(msg) from exc


def remove_tree(path: Path) -> None:
    """Remove a directory tree.  No-op if the path does not exist."""
    if path.exists():
        try:
            shutil.rmtree(path)
        except OSError as exc:
            msg = f"Failed to remove {path}: {exc.strerror or exc}"
            raise StorageIOError(msg) from exc

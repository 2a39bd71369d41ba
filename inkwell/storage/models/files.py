"""File listing and content operation models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from inkwell.storage.models.repository import CommitResult


class FileNode(BaseModel):
    """One file or folder in a workspace listing.

    ``path`` is relative to the sandbox root and always uses ``/``.  ``id`` is
    the same relative path, so UI state keyed by id survives a re-listing as
    long as the entry is not moved.  Files carry ``children=None``; folders
    carry a (possibly empty) list.
    """

    id: str
    name: str
    path: str
    children: list[FileNode] | None = None

    @property
    def is_dir(self) -> bool:
        return self.children is not None


class FileCountStats(BaseModel):
    """Aggregate size of a workspace (or of all workspaces)."""

    total_files: int = 0
    total_size: int = 0

    def __add__(self, other: FileCountStats) -> FileCountStats:
        return FileCountStats(
            total_files=self.total_files + other.total_files,
            total_size=self.total_size + other.total_size,
        )


class UploadFile(BaseModel):
    """A single file in a bulk upload batch."""

    name: str = Field(description="File name, optionally with sub-folders, relative to the target directory.")
    content: bytes = b""


class UploadResult(BaseModel):
    """Per-file outcome of a bulk upload."""

    path: str
    success: bool
    error: str | None = None


class UploadBatch(BaseModel):
    """Outcome of a whole upload call: per-file results plus the auto-commit, if any."""

    results: list[UploadResult] = Field(default_factory=list)
    commit: CommitResult | None = None

    @property
    def uploaded(self) -> list[str]:
        return [r.path for r in self.results if r.success]

    @property
    def failed(self) -> list[UploadResult]:
        return [r for r in self.results if not r.success]

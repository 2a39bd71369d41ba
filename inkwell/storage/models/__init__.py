"""Data models for the storage core."""

from inkwell.storage.models.enums import FileAction, RepositoryState
from inkwell.storage.models.files import FileCountStats, FileNode, UploadBatch, UploadFile, UploadResult
from inkwell.storage.models.repository import CommitResult, PullResult, RepositoryConfig

__all__ = [
    "CommitResult",
    "FileAction",
    "FileCountStats",
    "FileNode",
    "PullResult",
    "RepositoryConfig",
    "RepositoryState",
    "UploadBatch",
    "UploadFile",
    "UploadResult",
]

"""Filesystem layer: sandbox paths, tree listing, content, lookup and stats."""

from inkwell.storage.fs.paths import RESERVED_NAMES, WorkspaceKey, WorkspacePaths, clean_relative

__all__ = ["RESERVED_NAMES", "WorkspaceKey", "WorkspacePaths", "clean_relative"]

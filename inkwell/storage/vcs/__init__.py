"""Repository synchronization: capability interface, git driver, commit messages."""

from inkwell.storage.vcs.base import Repository, RepositoryFactory
from inkwell.storage.vcs.git import GitRepository, make_git_factory
from inkwell.storage.vcs.message import render_commit_message

__all__ = ["GitRepository", "Repository", "RepositoryFactory", "make_git_factory", "render_commit_message"]

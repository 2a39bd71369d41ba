"""Repository configuration and synchronization results.

``RepositoryConfig`` mirrors the git fields of the persisted workspace record.
The record itself lives in the external database; the core only receives
this snapshot of it.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr


class RepositoryConfig(BaseModel):
    """Remote repository settings for one workspace."""

    enabled: bool = False
    remote_url: str = ""
    username: str = ""
    token: SecretStr = SecretStr("")
    auto_commit: bool = False
    commit_message_template: str = "${action} ${filename}"
    commit_author_name: str = ""
    commit_author_email: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.username or self.token.get_secret_value())

    def changes_repository(self, other: RepositoryConfig) -> bool:
        """Whether moving from ``other`` to this config needs a setup/disable transition.

        Template and auto-commit changes only affect later commits, so they do
        not require re-attaching the remote.
        """
        if self.enabled != other.enabled:
            return True
        if not self.enabled:
            return False
        return (
            self.remote_url != other.remote_url
            or self.username != other.username
            or self.token.get_secret_value() != other.token.get_secret_value()
            or self.commit_author_name != other.commit_author_name
            or self.commit_author_email != other.commit_author_email
        )


class CommitResult(BaseModel):
    """Outcome of a commit-and-push.

    ``nothing_to_commit`` is set (and ``commit_hash`` left empty) when the
    working tree had no changes -- no commit is fabricated in that case.
    """

    commit_hash: str | None = None
    nothing_to_commit: bool = False
    message: str = ""


class PullResult(BaseModel):
    """Outcome of a pull."""

    updated: bool = False
    head: str | None = Field(default=None, description="HEAD after the pull, if the branch has commits.")

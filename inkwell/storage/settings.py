"""Storage configuration loaded from INKWELL_* environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class InkwellSettings(BaseSettings):
    """Inkwell storage core settings.

    All fields are read from environment variables with the ``INKWELL_``
    prefix.  For example, ``INKWELL_DATA_ROOT=/srv/notes`` maps to
    ``data_root``.

    Per-workspace repository settings (remote URL, credentials, author) are
    **not** managed here -- they live on the persisted workspace record and
    reach the core as a ``RepositoryConfig``.  The commit defaults below only
    fill in fields that record leaves empty.
    """

    model_config = SettingsConfigDict(
        env_prefix="INKWELL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Root directory holding every workspace sandbox."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all data paths.

    When set, sandboxes live under ``{data_root}/{data_prefix}/workspaces/``.
    """

    # -- Concurrency -----------------------------------------------------------
    lock_timeout: float = Field(default=30.0, gt=0)
    """Seconds a mutating call waits for its workspace lock before failing busy."""

    git_timeout: float = Field(default=120.0, gt=0)
    """Deadline in seconds for a single repository operation (setup, commit+push, pull)."""

    # -- Git -------------------------------------------------------------------
    git_binary: str = "git"
    default_branch: str = "main"
    """Branch name used when initialising a repository against an empty remote."""

    commit_author_name: str = "Inkwell"
    commit_author_email: str = "inkwell@localhost"
    commit_message_template: str = "${action} ${filename}"


def get_settings() -> InkwellSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


@lru_cache(maxsize=1)
def _get_settings_cached() -> InkwellSettings:
    return InkwellSettings()

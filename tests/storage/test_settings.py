"""Settings loading and repository config comparisons."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from inkwell.storage.models.repository import RepositoryConfig
from inkwell.storage.settings import InkwellSettings, _get_settings_cached, get_settings


def test_settings_from_env(data_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INKWELL_LOCK_TIMEOUT", "2.5")
    monkeypatch.setenv("INKWELL_DATA_PREFIX", "tenant")
    _get_settings_cached.cache_clear()

    settings = get_settings()

    assert settings.data_root == str(data_root)
    assert settings.data_prefix == "tenant"
    assert settings.lock_timeout == 2.5
    assert settings.commit_message_template == "${action} ${filename}"
    assert get_settings() is settings


def test_timeouts_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        InkwellSettings(lock_timeout=0)


def test_token_is_not_rendered() -> None:
    config = RepositoryConfig(enabled=True, remote_url="https://example.com/r.git", token="s3cret")
    assert "s3cret" not in repr(config)
    assert config.has_credentials


def test_changes_repository() -> None:
    base = RepositoryConfig(enabled=True, remote_url="https://example.com/r.git", token="a")

    assert not base.changes_repository(base)
    assert not base.model_copy(update={"auto_commit": True}).changes_repository(base)
    assert base.model_copy(update={"token": SecretStr("b")}).changes_repository(base)
    assert base.model_copy(update={"remote_url": "https://example.com/other.git"}).changes_repository(base)
    assert base.model_copy(update={"enabled": False}).changes_repository(base)
    # Both disabled: nothing to do whatever else changed.
    assert not RepositoryConfig(remote_url="x").changes_repository(RepositoryConfig(remote_url="y"))

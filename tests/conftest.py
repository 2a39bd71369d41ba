"""Shared test fixtures.

Every test works inside ``tmp_path``; nothing touches the real data root.
Tests that drive a real ``git`` executable are marked
``@pytest.mark.integration`` and skipped when git is not installed.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from inkwell.storage.settings import _get_settings_cached


@pytest.fixture
def data_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point ``INKWELL_DATA_ROOT`` at a temporary directory and reset the settings cache."""
    root = tmp_path / "data"
    monkeypatch.setenv("INKWELL_DATA_ROOT", str(root))
    monkeypatch.setenv("INKWELL_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("INKWELL_DATA_PREFIX", raising=False)
    _get_settings_cached.cache_clear()
    yield root
    _get_settings_cached.cache_clear()

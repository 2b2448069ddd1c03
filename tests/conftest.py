from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("DOTSTATE_LOG_LEVEL", raising=False)
    return home


@pytest.fixture
def store(tmp_path: Path) -> Path:
    """Store location beside the fake home; not created."""

    return tmp_path / "store"

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep the user's real ``~/.deep-planning`` and env overrides out of every test."""

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("DEEP_PLANNING_PLANS_DIR", raising=False)
    monkeypatch.delenv("DISABLE_THOUGHT_LOGGING", raising=False)
    return home


@pytest.fixture()
def plans_dir(tmp_path: Path) -> Path:
    return tmp_path / "plans"


@pytest.fixture()
def persistence(plans_dir: Path):
    from deepplan.memory.store import PersistenceManager

    return PersistenceManager(plans_dir=plans_dir)

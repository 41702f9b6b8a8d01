"""Pytest configuration for test isolation.

Settings are resolved from ``GASTOBOT_*`` environment variables and a state
file under ``GASTOBOT_STATE_DIR``. A developer's shell (or a ``.env`` loaded
by an earlier CLI test) must not leak into assertions, so every test starts
from a clean environment with its state directory inside ``tmp_path``.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

_ISOLATED_VARS = (
    "GASTOBOT_USER_NAME",
    "GASTOBOT_LEDGER_URL",
    "GASTOBOT_MODEL",
    "GASTOBOT_BRIDGE_ENABLED",
    "GASTOBOT_POLL_DELAY",
    "GASTOBOT_LEDGER_TIMEOUT",
    "GASTOBOT_LOG_LEVEL",
    "TELEGRAM_BOT_TOKEN",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in _ISOLATED_VARS:
        monkeypatch.delenv(name, raising=False)
    state_dir = tmp_path / "state"
    state_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("GASTOBOT_STATE_DIR", os.fspath(state_dir))
    # Keep CLI tests from picking up a .env in the developer's checkout.
    monkeypatch.chdir(tmp_path)
    return state_dir

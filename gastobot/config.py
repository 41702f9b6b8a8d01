"""Runtime settings resolved from the environment and the persisted state.

Precedence per field: explicit environment variable, then the value saved in
the state file (``gastobot configure``), then the default. Blank strings
count as unset. ``OPENAI_API_KEY`` is left to the OpenAI SDK.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_USER_NAME = "Usuario"
DEFAULT_MODEL = "gpt-5"
DEFAULT_POLL_DELAY_SEC = 3.0
DEFAULT_LEDGER_TIMEOUT_SEC = 12.0
STATE_FILE_NAME = "state.json"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env(name: str) -> str | None:
    val = os.getenv(name)
    if val is None or not val.strip():
        return None
    return val.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _env_bool(name: str) -> bool | None:
    raw = _env(name)
    if raw is None:
        return None
    v = raw.lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag (1/0, true/false), got {raw!r}")


def _state_str(state: Mapping[str, Any], key: str) -> str | None:
    val = state.get(key)
    if isinstance(val, str) and val.strip():
        return val.strip()
    return None


def resolve_state_dir() -> Path:
    """Return the state directory (``GASTOBOT_STATE_DIR`` or ``./.gastobot``)."""

    root = _env("GASTOBOT_STATE_DIR")
    if root:
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".gastobot").resolve()


@dataclass(frozen=True, slots=True)
class Settings:
    user_name: str = DEFAULT_USER_NAME
    ledger_url: str | None = None
    model: str = DEFAULT_MODEL
    telegram_token: str | None = None
    bridge_enabled: bool = False
    poll_delay_sec: float = DEFAULT_POLL_DELAY_SEC
    ledger_timeout_sec: float = DEFAULT_LEDGER_TIMEOUT_SEC
    state_dir: Path = Path(".gastobot")

    @property
    def state_file(self) -> Path:
        return self.state_dir / STATE_FILE_NAME

    @property
    def bridge_ready(self) -> bool:
        """True when the Telegram bridge is enabled and has somewhere to write."""

        return self.bridge_enabled and bool(self.telegram_token) and bool(self.ledger_url)

    @classmethod
    def resolve(cls, state: Mapping[str, Any] | None = None) -> Settings:
        """Build settings from the environment, falling back to ``state``."""

        state = state or {}
        bridge_env = _env_bool("GASTOBOT_BRIDGE_ENABLED")
        bridge_state = state.get("bridge_enabled")
        return cls(
            user_name=_env("GASTOBOT_USER_NAME")
            or _state_str(state, "user_name")
            or DEFAULT_USER_NAME,
            ledger_url=_env("GASTOBOT_LEDGER_URL") or _state_str(state, "ledger_url"),
            model=_env("GASTOBOT_MODEL") or DEFAULT_MODEL,
            telegram_token=_env("TELEGRAM_BOT_TOKEN"),
            bridge_enabled=(
                bridge_env
                if bridge_env is not None
                else bridge_state is True
            ),
            poll_delay_sec=_env_float("GASTOBOT_POLL_DELAY", DEFAULT_POLL_DELAY_SEC),
            ledger_timeout_sec=_env_float("GASTOBOT_LEDGER_TIMEOUT", DEFAULT_LEDGER_TIMEOUT_SEC),
            state_dir=resolve_state_dir(),
        )

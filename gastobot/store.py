"""In-process state: the local expense list, the chat transcript, and the
JSON state file they are persisted to.

Mutation discipline is single-writer: whichever entry point is processing an
utterance (terminal chat or Telegram bridge) owns the store for that turn.
Nothing here takes a lock.

State file layout (``<state_dir>/state.json``)::

    {"user_name": ..., "ledger_url": ..., "bridge_enabled": ...,
     "expenses": [<Expense wire dict>, ...], "telegram_last_update_id": N}

Atomicity: writes target ``.tmp`` first and then ``os.replace`` into place.
"""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import ChatMessage, Expense, Sender

_logger = get_logger("gastobot.store")


# ---------------------------------------------------------------------------
# Local expense store
# ---------------------------------------------------------------------------


class LocalExpenseStore:
    """Ordered, newest-first collection of expenses with unique ids."""

    def __init__(self, expenses: Iterable[Expense] = ()) -> None:
        self._items: list[Expense] = []
        self._ids: set[str] = set()
        for e in expenses:
            if e.id in self._ids:
                raise ValueError(f"duplicate expense id {e.id!r}")
            self._items.append(e)
            self._ids.add(e.id)

    def add(self, expense: Expense) -> None:
        """Prepend ``expense``; newest records come first."""

        if expense.id in self._ids:
            raise ValueError(f"duplicate expense id {expense.id!r}")
        self._items.insert(0, expense)
        self._ids.add(expense.id)

    def remove(self, expense_id: str) -> bool:
        """Delete by id. Returns False (and does nothing) when absent."""

        if expense_id not in self._ids:
            return False
        self._items = [e for e in self._items if e.id != expense_id]
        self._ids.discard(expense_id)
        return True

    def replace_all(self, expenses: Iterable[Expense]) -> None:
        """Swap in a freshly synced list, keeping its order.

        Duplicate ids keep their first (newest) occurrence.
        """

        items: list[Expense] = []
        ids: set[str] = set()
        for e in expenses:
            if e.id in ids:
                _logger.warning("store:duplicate_id_dropped id=%s", e.id)
                continue
            items.append(e)
            ids.add(e.id)
        self._items = items
        self._ids = ids

    def all(self) -> tuple[Expense, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, expense_id: object) -> bool:
        return expense_id in self._ids


# ---------------------------------------------------------------------------
# Chat transcript
# ---------------------------------------------------------------------------


class ChatTranscript:
    """Append-only message log; insertion order is the only ordering."""

    def __init__(self) -> None:
        self._messages: list[ChatMessage] = []

    def append(self, text: str, sender: Sender) -> ChatMessage:
        msg = ChatMessage(
            id=str(uuid.uuid4()),
            text=text,
            sender=sender,
            timestamp=datetime.now(UTC),
        )
        self._messages.append(msg)
        return msg

    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


class StateStorage(Protocol):
    def load(self) -> dict[str, Any]: ...

    def save(self, state: Mapping[str, Any]) -> None: ...


class JsonStateFile:
    """File-backed :class:`StateStorage`.

    A missing file loads as ``{}``. A corrupt file also loads as ``{}`` and is
    reported once as a warning; the next ``save`` overwrites it.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            _logger.warning("state:corrupt path=%s error=%s", self.path, e)
            return {}
        if not isinstance(data, dict):
            _logger.warning("state:unexpected_shape path=%s", self.path)
            return {}
        return data

    def save(self, state: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(dict(state), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def update(self, **changes: Any) -> dict[str, Any]:
        """Read-modify-write helper; returns the new state."""

        state = self.load()
        state.update(changes)
        self.save(state)
        return state


def expenses_from_state(state: Mapping[str, Any]) -> list[Expense]:
    """Decode the persisted expense list, skipping records that fail validation."""

    raw = state.get("expenses") or []
    if not isinstance(raw, list):
        _logger.warning("state:expenses_not_a_list type=%s", type(raw).__name__)
        return []
    out: list[Expense] = []
    seen: set[str] = set()
    for item in raw:
        try:
            expense = Expense.model_validate(item)
        except ValidationError as e:
            _logger.warning("state:expense_skipped errors=%d", e.error_count())
            continue
        if expense.id in seen:
            continue
        seen.add(expense.id)
        out.append(expense)
    return out


def expenses_to_state(expenses: Iterable[Expense]) -> list[dict[str, Any]]:
    return [e.to_wire() for e in expenses]

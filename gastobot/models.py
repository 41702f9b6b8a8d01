"""Data models and type aliases for ``gastobot``.

- :class:`Expense`: one ledger record, validated on construction and on
  re-sync from the remote ledger.
- :class:`ChatMessage`: an immutable transcript line.
- Structured calls: one frozen dataclass per operation the model may invoke,
  each carrying a strictly validated argument model. Calls are produced by the
  extractor and consumed immediately by the reconciler; they are never stored.
- :class:`Calls` / :class:`Text`: the two shapes an interpretation can take.
- :class:`ReconciliationOutcome`: what the reconciler asks the caller to apply.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, ClassVar, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ExtractionError
from .formatting import wire_number

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _require_iso_date(value: str) -> str:
    if not _ISO_DATE_RE.fullmatch(value):
        raise ValueError(f"expected a YYYY-MM-DD date, got {value!r}")
    date.fromisoformat(value)  # rejects 2024-02-30 and friends
    return value


# ---------------------------------------------------------------------------
# Ledger record
# ---------------------------------------------------------------------------


class Expense(BaseModel):
    """A single expense.

    ``expense_date`` is when the money was spent (``YYYY-MM-DD``);
    ``entry_date`` is when the record was created. The ledger renders the
    latter in its own format on re-sync, so it is kept as an opaque string.
    ``category`` is stored as received; new records are normalized onto the
    closed set by the reconciler before they get here.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    id: str
    amount: float
    category: str
    description: str
    expense_date: str = Field(alias="expenseDate")
    entry_date: str = Field(default="", alias="entryDate")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> Any:
        # Sheets hand back numeric-looking ids as numbers.
        if isinstance(v, int | float) and not isinstance(v, bool):
            return str(int(v)) if float(v).is_integer() else str(v)
        return v

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("id must be non-empty")
        return v

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

    @field_validator("expense_date")
    @classmethod
    def _expense_date_iso(cls, v: str) -> str:
        return _require_iso_date(v)

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase mapping used by the ledger and the state file."""

        return {
            "id": self.id,
            "amount": wire_number(self.amount),
            "category": self.category,
            "description": self.description,
            "expenseDate": self.expense_date,
            "entryDate": self.entry_date,
        }


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------

Sender: TypeAlias = Literal["user", "bot"]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    text: str
    sender: Sender
    timestamp: datetime


# ---------------------------------------------------------------------------
# Structured calls
# ---------------------------------------------------------------------------


class _CallArgs(BaseModel):
    # Strict: a quoted "5000" or an unexpected key is a model error, not data.
    model_config = ConfigDict(
        strict=True, extra="forbid", frozen=True, str_strip_whitespace=True
    )


class AddExpenseArgs(_CallArgs):
    amount: float
    category: str
    description: str
    expense_date: str = Field(alias="expenseDate")

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("amount must be positive")
        return v

    @field_validator("category", "description")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v

    @field_validator("expense_date")
    @classmethod
    def _date_iso(cls, v: str) -> str:
        return _require_iso_date(v)


class DeleteExpenseArgs(_CallArgs):
    search_query: str = Field(alias="searchQuery")

    @field_validator("search_query")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("searchQuery must be non-empty")
        return v


class HistoryArgs(_CallArgs):
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    # Free-text context the model may attach; informational only.
    filter_description: str | None = Field(default=None, alias="filterDescription")

    @field_validator("start_date", "end_date")
    @classmethod
    def _date_iso(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        return _require_iso_date(v)


@dataclass(frozen=True, slots=True)
class AddExpenseCall:
    args: AddExpenseArgs
    name: ClassVar[str] = "add_expense"


@dataclass(frozen=True, slots=True)
class DeleteExpenseCall:
    args: DeleteExpenseArgs
    name: ClassVar[str] = "delete_expense"


@dataclass(frozen=True, slots=True)
class HistoryCall:
    args: HistoryArgs
    name: ClassVar[str] = "get_expenses_history"


StructuredCall: TypeAlias = AddExpenseCall | DeleteExpenseCall | HistoryCall

_CALL_TYPES: dict[str, tuple[type[_CallArgs], Any]] = {
    AddExpenseCall.name: (AddExpenseArgs, AddExpenseCall),
    DeleteExpenseCall.name: (DeleteExpenseArgs, DeleteExpenseCall),
    HistoryCall.name: (HistoryArgs, HistoryCall),
}

CALL_NAMES: tuple[str, ...] = tuple(_CALL_TYPES)


def parse_call(name: str, raw_args: str | Mapping[str, Any] | None) -> StructuredCall:
    """Build a typed call from a tool name and its raw arguments.

    ``raw_args`` may be the JSON string emitted by the model or an already
    decoded mapping. Raises :class:`~gastobot.errors.ExtractionError` for an
    unknown tool, undecodable JSON or arguments that fail validation.
    """

    entry = _CALL_TYPES.get(name)
    if entry is None:
        raise ExtractionError(f"unknown operation {name!r}")
    args_model, call_type = entry

    if raw_args is None or raw_args == "":
        decoded: Any = {}
    elif isinstance(raw_args, str):
        try:
            decoded = json.loads(raw_args)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"{name}: arguments are not valid JSON") from e
    else:
        decoded = dict(raw_args)
    if not isinstance(decoded, dict):
        raise ExtractionError(f"{name}: arguments must be a JSON object")

    try:
        args = args_model.model_validate(decoded)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
            for err in e.errors()
        )
        raise ExtractionError(f"{name}: {problems}") from e
    return call_type(args=args)


# ---------------------------------------------------------------------------
# Interpretation and reconciliation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Calls:
    """The model chose one or more operations, in the order given."""

    calls: tuple[StructuredCall, ...]


@dataclass(frozen=True, slots=True)
class Text:
    """A direct reply: small talk, a clarification or a diagnostic."""

    text: str


InterpretationResult: TypeAlias = Calls | Text


@dataclass(frozen=True, slots=True)
class ReconciliationOutcome:
    """Combined reply plus the local mutations the caller must apply.

    ``expenses_to_add`` are in call order; prepend them one by one so the
    last-mentioned purchase ends up newest.
    """

    response_text: str
    expenses_to_add: tuple[Expense, ...] = field(default_factory=tuple)
    expenses_to_remove: tuple[str, ...] = field(default_factory=tuple)

"""Intent reconciliation: structured calls → local mutations, remote writes,
and one combined chat reply.

Calls are processed strictly in the order the extractor returned them. Per
call kind:

- ``add_expense``: amount normalized by :func:`apply_magnitude_heuristic`,
  category normalized onto the closed set, fresh id and entry timestamp
  assigned, expense queued. All queued adds go to the ledger in one bulk
  write after the loop, followed by a single summary fragment.
- ``delete_expense``: fuzzy match against the local list
  (:func:`find_delete_match`), remote delete, local removal.
- ``get_expenses_history``: inclusive date filter, newest-first report with
  a total. Pure read.

Adds and deletes follow different sync policies. By default adds are
applied locally even if the bulk write fails (``OPTIMISTIC_ON_ADD``) while
deletes only take effect locally once the ledger confirms
(``CONFIRMED_ON_DELETE``). A failed add is neither retried nor rolled back.

The returned :class:`~gastobot.models.ReconciliationOutcome` describes the
local mutations; the caller applies them to its store.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final, Protocol

from .categories import normalize_category
from .errors import LedgerError
from .extractor import NO_UNDERSTANDING_REPLY
from .formatting import format_day_month, format_money, plain_amount
from .logging_setup import get_logger
from .models import (
    AddExpenseArgs,
    AddExpenseCall,
    DeleteExpenseCall,
    Expense,
    HistoryArgs,
    HistoryCall,
    ReconciliationOutcome,
    StructuredCall,
)

_logger = get_logger("gastobot.reconciler")

_MAGNITUDE_THRESHOLD: Final[float] = 1000.0
_MAGNITUDE_FACTOR: Final[int] = 1000
_MAX_ID_ATTEMPTS: Final[int] = 8

EMPTY_HISTORY_REPLY: Final[str] = "No hay gastos registrados en este periodo."


class SyncPolicy(StrEnum):
    OPTIMISTIC = "optimistic"  # apply locally whatever the ledger answers
    CONFIRMED = "confirmed"  # apply locally only after the ledger acknowledges


OPTIMISTIC_ON_ADD: Final[SyncPolicy] = SyncPolicy.OPTIMISTIC
CONFIRMED_ON_DELETE: Final[SyncPolicy] = SyncPolicy.CONFIRMED


@dataclass(frozen=True, slots=True)
class ReconcilePolicy:
    on_add: SyncPolicy = OPTIMISTIC_ON_ADD
    on_delete: SyncPolicy = CONFIRMED_ON_DELETE


DEFAULT_POLICY: Final[ReconcilePolicy] = ReconcilePolicy()


class RemoteLedger(Protocol):
    def bulk_add(self, expenses: Sequence[Expense]) -> int: ...

    def delete(self, expense_id: str) -> None: ...


# ---- Business rules ----------------------------------------------------------


def apply_magnitude_heuristic(amount: float) -> float:
    """Scale abbreviated peso amounts: whole numbers below 1000 are thousands.

    ``5`` → ``5000``, ``1500`` → ``1500``, ``99.5`` → ``99.5``. This is lossy
    by intent: a real 500-peso purchase typed as ``500`` is stored as 500000.
    """

    if float(amount).is_integer() and amount < _MAGNITUDE_THRESHOLD:
        return float(amount) * _MAGNITUDE_FACTOR
    return float(amount)


def find_delete_match(query: str, expenses: Iterable[Expense]) -> Expense | None:
    """Return the first expense matching ``query`` in list order.

    An expense matches when its description contains the query
    (case-insensitive) or its amount, rendered as a plain decimal string,
    equals the query exactly. The query is only lower-cased; surrounding
    whitespace is part of it (call arguments arrive already stripped).
    """

    q = query.lower()
    if not q:
        return None
    for e in expenses:
        if q in e.description.lower() or plain_amount(e.amount) == q:
            return e
    return None


def filter_history(
    expenses: Iterable[Expense], start_date: str | None, end_date: str | None
) -> list[Expense]:
    """Inclusive ``[start_date, end_date]`` filter, most recent first.

    Either bound may be ``None``. ISO dates compare correctly as strings.
    Records sharing a date keep their relative order.
    """

    selected = [
        e
        for e in expenses
        if (start_date is None or e.expense_date >= start_date)
        and (end_date is None or e.expense_date <= end_date)
    ]
    return sorted(selected, key=lambda e: e.expense_date, reverse=True)


def render_history_report(expenses: Sequence[Expense]) -> str:
    """One bullet line per expense and a closing total line."""

    if not expenses:
        return EMPTY_HISTORY_REPLY
    lines = [
        f"• {format_day_month(e.expense_date)} - {e.description}: **${format_money(e.amount)}**"
        for e in expenses
    ]
    total = math.fsum(e.amount for e in expenses)
    return "\n".join(lines) + f"\n\n💰 **TOTAL: ${format_money(total)}**"


def render_add_summary(expenses: Sequence[Expense]) -> str:
    n = len(expenses)
    total = math.fsum(e.amount for e in expenses)
    noun = "gasto" if n == 1 else "gastos"
    return f"✅ Registré {n} {noun} por **${format_money(total)}**."


# ---- Reconciliation ----------------------------------------------------------


def _new_id() -> str:
    return str(uuid.uuid4())


class _IdAllocator:
    def __init__(self, factory: Callable[[], str], taken: Iterable[str]) -> None:
        self._factory = factory
        self._taken = set(taken)

    def __call__(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._factory()
            if candidate and candidate not in self._taken:
                self._taken.add(candidate)
                return candidate
        raise RuntimeError("id factory keeps returning ids that are already in use")


def _build_expense(args: AddExpenseArgs, *, expense_id: str, entry_date: str) -> Expense:
    category = normalize_category(args.category)
    if category != args.category:
        _logger.info(
            'reconcile:category_normalized raw="%s" category=%s', args.category, category
        )
    return Expense(
        id=expense_id,
        amount=apply_magnitude_heuristic(args.amount),
        category=category,
        description=args.description,
        expense_date=args.expense_date,
        entry_date=entry_date,
    )


def _history_fragment(args: HistoryArgs, working: Sequence[Expense]) -> str:
    selected = filter_history(working, args.start_date, args.end_date)
    _logger.info(
        "reconcile:history start=%s end=%s matches=%d",
        args.start_date or "-",
        args.end_date or "-",
        len(selected),
    )
    return render_history_report(selected)


def _delete_target(
    target: Expense,
    ledger: RemoteLedger | None,
    policy: ReconcilePolicy,
    fragments: list[str],
) -> bool:
    """Delete ``target`` remotely per ``policy``; True when it goes locally too."""

    confirmation = f"🗑️ Borré: **{target.description}** (${format_money(target.amount)})."
    if ledger is None:
        fragments.append(confirmation)
        return True
    try:
        ledger.delete(target.id)
    except LedgerError as e:
        _logger.warning("reconcile:delete_remote_failed id=%s error=%s", target.id, e)
        removed = policy.on_delete is SyncPolicy.OPTIMISTIC
        if removed:
            fragments.append(confirmation)
        fragments.append(f"⚠️ Error al borrar en la planilla: {e}")
        return removed
    fragments.append(confirmation)
    return True


def delete_expense_by_id(
    expense_id: str,
    local_expenses: Sequence[Expense],
    ledger: RemoteLedger | None,
    *,
    policy: ReconcilePolicy = DEFAULT_POLICY,
) -> ReconciliationOutcome:
    """Delete one record picked by id rather than by a model query.

    Same sync policy and fragments as a ``delete_expense`` call; an unknown
    id never reaches the ledger.
    """

    target = next((e for e in local_expenses if e.id == expense_id), None)
    if target is None:
        _logger.info("reconcile:delete_id_not_found id=%s", expense_id)
        return ReconciliationOutcome(
            response_text=f"No encontré ningún gasto con id {expense_id}."
        )
    fragments: list[str] = []
    removed = _delete_target(target, ledger, policy, fragments)
    return ReconciliationOutcome(
        response_text="\n\n".join(fragments),
        expenses_to_remove=(target.id,) if removed else (),
    )


def reconcile(
    calls: Sequence[StructuredCall],
    local_expenses: Sequence[Expense],
    ledger: RemoteLedger | None,
    *,
    policy: ReconcilePolicy = DEFAULT_POLICY,
    now: datetime | None = None,
    new_id: Callable[[], str] = _new_id,
) -> ReconciliationOutcome:
    """Execute ``calls`` against the local snapshot and the optional ledger.

    Parameters
    ----------
    calls:
        Typed calls from the extractor, processed in order.
    local_expenses:
        Current local list, newest first. Not mutated.
    ledger:
        Remote ledger, or ``None`` for local-only mode (no remote calls;
        deletes apply immediately).
    policy:
        Add/delete sync policies; see :class:`ReconcilePolicy`.
    now:
        Entry timestamp for new records (defaults to the current UTC time).
    new_id:
        Id factory; ids colliding with existing or earlier ones are redrawn.

    Returns
    -------
    ReconciliationOutcome
        Fragments joined by a blank line, plus ids to remove and expenses to
        add. Ledger failures become fragments and never raise.
    """

    if not calls:
        return ReconciliationOutcome(response_text=NO_UNDERSTANDING_REPLY)

    snapshot = tuple(local_expenses)
    allocate_id = _IdAllocator(new_id, (e.id for e in snapshot))
    entry_date = (now or datetime.now(UTC)).isoformat(timespec="seconds")

    fragments: list[str] = []
    queued_adds: list[Expense] = []
    removals: list[str] = []

    for call in calls:
        # Later calls see earlier removals; queued adds are not on the ledger yet.
        working = [e for e in snapshot if e.id not in removals]

        if isinstance(call, AddExpenseCall):
            queued_adds.append(
                _build_expense(call.args, expense_id=allocate_id(), entry_date=entry_date)
            )
        elif isinstance(call, DeleteExpenseCall):
            query = call.args.search_query.lower()
            target = find_delete_match(query, working)
            if target is None:
                _logger.info('reconcile:delete_not_found query="%s"', query)
                fragments.append(f'No encontré nada con "{query}".')
                continue
            if _delete_target(target, ledger, policy, fragments):
                removals.append(target.id)
        elif isinstance(call, HistoryCall):
            fragments.append(_history_fragment(call.args, working))
        else:  # pragma: no cover - exhaustiveness guard for new call kinds
            raise TypeError(f"unsupported call type {type(call).__name__}")

    adds: tuple[Expense, ...] = tuple(queued_adds)
    if queued_adds:
        write_error: str | None = None
        if ledger is not None:
            try:
                ledger.bulk_add(queued_adds)
            except LedgerError as e:
                _logger.warning(
                    "reconcile:bulk_add_failed count=%d error=%s", len(queued_adds), e
                )
                write_error = f"⚠️ Error al guardar en la planilla: {e}"
        if write_error is not None and policy.on_add is SyncPolicy.CONFIRMED:
            adds = ()
        else:
            fragments.append(render_add_summary(queued_adds))
        if write_error is not None:
            fragments.append(write_error)

    _logger.info(
        "reconcile:done calls=%d added=%d removed=%d", len(calls), len(adds), len(removals)
    )
    return ReconciliationOutcome(
        response_text="\n\n".join(fragments),
        expenses_to_add=adds,
        expenses_to_remove=tuple(removals),
    )

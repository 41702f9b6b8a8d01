from datetime import UTC, datetime
from itertools import count

import pytest

from gastobot.extractor import NO_UNDERSTANDING_REPLY
from gastobot.models import Expense, parse_call
from gastobot.reconciler import (
    EMPTY_HISTORY_REPLY,
    ReconcilePolicy,
    SyncPolicy,
    apply_magnitude_heuristic,
    filter_history,
    find_delete_match,
    reconcile,
    render_history_report,
)
from tests.helpers.ledger_fakes import RecordingLedger

_NOW = datetime(2024, 1, 5, 12, 0, tzinfo=UTC)


# ---- Helpers -----------------------------------------------------------------


def _exp(id_: str, amount: float, description: str, day: str = "2024-01-05", category: str = "Otros"):
    return Expense(
        id=id_, amount=amount, category=category, description=description, expense_date=day
    )


def _add(amount, description, day="2024-01-05", category="Restaurantes"):
    return parse_call(
        "add_expense",
        {"amount": amount, "category": category, "description": description, "expenseDate": day},
    )


def _delete(query):
    return parse_call("delete_expense", {"searchQuery": query})


def _history(start=None, end=None):
    args = {}
    if start is not None:
        args["startDate"] = start
    if end is not None:
        args["endDate"] = end
    return parse_call("get_expenses_history", args)


def _ids(prefix="new"):
    seq = count(1)
    return lambda: f"{prefix}-{next(seq)}"


# ---- Business rules ----------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(5, 5000.0), (999, 999000.0), (1000, 1000.0), (1500, 1500.0), (99.5, 99.5), (2500, 2500.0)],
)
def test_magnitude_heuristic(raw, expected):
    assert apply_magnitude_heuristic(raw) == expected


def test_delete_match_takes_first_in_list_order():
    expenses = [_exp("a", 500, "Coffee"), _exp("b", 200, "Bus")]
    assert find_delete_match("500", expenses).id == "a"
    assert find_delete_match("bu", expenses).id == "b"
    assert find_delete_match("tea", expenses) is None


def test_delete_match_by_amount_is_exact_not_substring():
    expenses = [_exp("a", 1500, "Taxi")]
    assert find_delete_match("150", expenses) is None
    assert find_delete_match("1500", expenses).id == "a"


def test_filter_history_inclusive_and_newest_first():
    expenses = [
        _exp("a", 100, "uno", "2024-01-01"),
        _exp("b", 200, "dos", "2024-01-31"),
        _exp("c", 300, "tres", "2024-02-01"),
        _exp("d", 400, "cuatro", "2023-12-31"),
    ]
    got = filter_history(expenses, "2024-01-01", "2024-01-31")
    assert [e.id for e in got] == ["b", "a"]


def test_history_report_lines_and_total():
    text = render_history_report(
        [_exp("b", 200, "Cine", "2024-01-31"), _exp("a", 100, "Pan", "2024-01-01")]
    )
    assert text.splitlines()[0] == "• 31/01 - Cine: **$200**"
    assert text.splitlines()[1] == "• 01/01 - Pan: **$100**"
    assert text.endswith("💰 **TOTAL: $300**")


def test_history_report_empty():
    assert render_history_report([]) == EMPTY_HISTORY_REPLY


# ---- Reconciliation ----------------------------------------------------------


def test_no_calls_answers_no_understanding():
    ledger = RecordingLedger()
    out = reconcile([], [], ledger)
    assert out.response_text == NO_UNDERSTANDING_REPLY
    assert out.expenses_to_add == () and out.expenses_to_remove == ()
    assert ledger.bulk_add_calls == [] and ledger.delete_calls == []


def test_multiple_adds_use_one_bulk_write_and_one_summary():
    ledger = RecordingLedger()
    out = reconcile(
        [_add(5, "pizza"), _add(3000, "taxi", category="Transporte")],
        [],
        ledger,
        now=_NOW,
        new_id=_ids(),
    )
    assert len(ledger.bulk_add_calls) == 1
    sent = ledger.bulk_add_calls[0]
    assert [e.amount for e in sent] == [5000.0, 3000.0]
    assert [e.id for e in sent] == ["new-1", "new-2"]
    assert all(e.entry_date == "2024-01-05T12:00:00+00:00" for e in sent)
    assert out.expenses_to_add == tuple(sent)
    assert out.response_text == "✅ Registré 2 gastos por **$8.000**."


def test_add_summary_singular():
    out = reconcile([_add(2500, "super")], [], RecordingLedger(), now=_NOW)
    assert out.response_text == "✅ Registré 1 gasto por **$2.500**."


def test_unknown_category_falls_back_to_otros():
    out = reconcile([_add(2500, "regalo", category="Regalos")], [], None, now=_NOW)
    assert out.expenses_to_add[0].category == "Otros"


def test_category_case_and_accents_are_normalized():
    out = reconcile([_add(2500, "celu", category="telefono")], [], None, now=_NOW)
    assert out.expenses_to_add[0].category == "Teléfono"


def test_new_ids_skip_existing_and_repeated_ids():
    existing = [_exp("dup", 100, "pan")]
    draws = iter(["dup", "x", "x", "y"])
    out = reconcile(
        [_add(2500, "uno"), _add(2600, "dos")], existing, None, now=_NOW, new_id=lambda: next(draws)
    )
    assert [e.id for e in out.expenses_to_add] == ["x", "y"]


def test_id_factory_that_never_yields_a_fresh_id_raises():
    with pytest.raises(RuntimeError):
        reconcile([_add(2500, "uno")], [_exp("same", 1, "a")], None, new_id=lambda: "same")


def test_delete_removes_first_match_after_remote_confirms():
    local = [_exp("a", 500, "Coffee"), _exp("b", 200, "Bus")]
    ledger = RecordingLedger()
    out = reconcile([_delete("500")], local, ledger)
    assert ledger.delete_calls == ["a"]
    assert out.expenses_to_remove == ("a",)
    assert out.response_text == "🗑️ Borré: **Coffee** ($500)."


def test_delete_not_found_leaves_everything_untouched():
    ledger = RecordingLedger()
    out = reconcile([_delete("Helado")], [_exp("a", 500, "Coffee")], ledger)
    assert out.response_text == 'No encontré nada con "helado".'
    assert out.expenses_to_remove == ()
    assert ledger.delete_calls == []


def test_delete_remote_failure_keeps_local_record():
    ledger = RecordingLedger(fail_delete="sin conexión")
    out = reconcile([_delete("coffee")], [_exp("a", 500, "Coffee")], ledger)
    assert out.expenses_to_remove == ()
    assert out.response_text == "⚠️ Error al borrar en la planilla: sin conexión"


def test_delete_not_found_remotely_is_an_error():
    ledger = RecordingLedger(missing_ids=["a"])
    out = reconcile([_delete("coffee")], [_exp("a", 500, "Coffee")], ledger)
    assert out.expenses_to_remove == ()
    assert out.response_text.startswith("⚠️ Error al borrar en la planilla:")


def test_optimistic_delete_policy_removes_despite_failure():
    ledger = RecordingLedger(fail_delete="boom")
    policy = ReconcilePolicy(on_delete=SyncPolicy.OPTIMISTIC)
    out = reconcile([_delete("coffee")], [_exp("a", 500, "Coffee")], ledger, policy=policy)
    assert out.expenses_to_remove == ("a",)
    assert out.response_text.splitlines()[0] == "🗑️ Borré: **Coffee** ($500)."
    assert out.response_text.endswith("⚠️ Error al borrar en la planilla: boom")


def test_local_only_delete_applies_immediately():
    out = reconcile([_delete("coffee")], [_exp("a", 500, "Coffee")], None)
    assert out.expenses_to_remove == ("a",)


def test_later_calls_do_not_see_earlier_removals():
    local = [_exp("a", 500, "Coffee"), _exp("b", 600, "Coffee beans")]
    ledger = RecordingLedger()
    out = reconcile([_delete("coffee"), _delete("coffee")], local, ledger)
    assert ledger.delete_calls == ["a", "b"]
    assert out.expenses_to_remove == ("a", "b")


def test_failed_bulk_add_keeps_records_under_default_policy():
    ledger = RecordingLedger(fail_bulk_add="cuota excedida")
    out = reconcile([_add(2500, "super")], [], ledger, now=_NOW)
    assert len(out.expenses_to_add) == 1
    assert out.response_text == (
        "✅ Registré 1 gasto por **$2.500**.\n\n⚠️ Error al guardar en la planilla: cuota excedida"
    )


def test_failed_bulk_add_drops_records_under_confirmed_policy():
    ledger = RecordingLedger(fail_bulk_add="cuota excedida")
    policy = ReconcilePolicy(on_add=SyncPolicy.CONFIRMED)
    out = reconcile([_add(2500, "super")], [], ledger, policy=policy, now=_NOW)
    assert out.expenses_to_add == ()
    assert out.response_text == "⚠️ Error al guardar en la planilla: cuota excedida"


def test_fragments_follow_call_order_with_add_summary_last():
    local = [_exp("a", 500, "Coffee", "2024-01-03")]
    ledger = RecordingLedger()
    out = reconcile(
        [_add(2500, "super"), _history("2024-01-01", "2024-01-31"), _delete("coffee")],
        local,
        ledger,
        now=_NOW,
    )
    parts = out.response_text.split("\n\n")
    assert parts[0] == "• 03/01 - Coffee: **$500**"
    assert parts[1] == "💰 **TOTAL: $500**"
    assert parts[2] == "🗑️ Borré: **Coffee** ($500)."
    assert parts[3] == "✅ Registré 1 gasto por **$2.500**."


def test_history_is_read_only():
    ledger = RecordingLedger()
    out = reconcile([_history()], [_exp("a", 100, "Pan")], ledger)
    assert out.expenses_to_add == () and out.expenses_to_remove == ()
    assert ledger.bulk_add_calls == [] and ledger.delete_calls == []
    assert "TOTAL: $100" in out.response_text


def test_history_without_matches():
    out = reconcile([_history("2030-01-01", "2030-01-31")], [_exp("a", 100, "Pan")], None)
    assert out.response_text == EMPTY_HISTORY_REPLY


def test_delete_precedence_example():
    expenses = [_exp("c", 500, "Coffee"), _exp("b", 200, "Bus")]
    assert find_delete_match("200", expenses).id == "b"
    assert find_delete_match("cof", expenses).id == "c"


def test_history_window_inside_a_month():
    january = [_exp(f"d{d}", 100, f"dia {d}", f"2024-01-{d:02d}") for d in range(1, 32)]
    got = filter_history(january, "2024-01-15", "2024-01-20")
    assert [e.expense_date for e in got] == [f"2024-01-{d}" for d in range(20, 14, -1)]


def test_history_sorts_newest_first_and_totals():
    expenses = [_exp("a", 100, "uno", "2024-01-05"), _exp("b", 200, "dos", "2024-01-10")]
    out = reconcile([_history()], expenses, None)
    lines = out.response_text.splitlines()
    assert lines[0].startswith("• 10/01")
    assert lines[-1] == "💰 **TOTAL: $300**"


def test_three_adds_one_bulk_write():
    ledger = RecordingLedger()
    out = reconcile([_add(1500, "a"), _add(2500, "b"), _add(3500, "c")], [], ledger, now=_NOW)
    assert len(out.expenses_to_add) == 3
    assert len(ledger.bulk_add_calls) == 1 and len(ledger.bulk_add_calls[0]) == 3


def test_delete_match_only_lowercases_the_query():
    expenses = [_exp("a", 500, "Coffee")]
    assert find_delete_match("COF", expenses).id == "a"
    assert find_delete_match(" cof", expenses) is None

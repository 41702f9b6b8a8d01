import json

import pytest
import requests
from typer.testing import CliRunner

import gastobot.extractor as extractor_mod
import gastobot.term_ui as term_ui_mod
from gastobot.cli import app
from tests.helpers.ledger_fakes import FakeSheetBackend
from tests.helpers.openai_stub import OpenAIStub, text_response, tool_calls_response

runner = CliRunner()

_PIZZA = {"amount": 5, "category": "Restaurantes", "description": "pizza", "expenseDate": "2024-01-05"}


# ---- Helpers -----------------------------------------------------------------


def _stub_openai(monkeypatch: pytest.MonkeyPatch, respond) -> OpenAIStub:
    stub = OpenAIStub(respond)
    monkeypatch.setattr(extractor_mod, "OpenAI", lambda: stub)
    return stub


def _state(state_dir) -> dict:
    return json.loads((state_dir / "state.json").read_text(encoding="utf-8"))


# ---- say / chat --------------------------------------------------------------


def test_say_records_expense_locally(monkeypatch: pytest.MonkeyPatch, _isolate_env):
    _stub_openai(monkeypatch, tool_calls_response(("add_expense", _PIZZA)))
    result = runner.invoke(app, ["say", "pizza 5"])
    assert result.exit_code == 0, result.output
    assert "Registré 1 gasto por" in result.output
    (saved,) = _state(_isolate_env)["expenses"]
    assert saved["description"] == "pizza" and saved["amount"] == 5000


def test_say_uses_configured_name(monkeypatch: pytest.MonkeyPatch):
    stub = _stub_openai(monkeypatch, text_response("Hola"))
    assert runner.invoke(app, ["configure", "--name", "Ana"]).exit_code == 0
    result = runner.invoke(app, ["say", "hola"])
    assert result.exit_code == 0
    assert "Usuario: Ana" in stub.calls[0]["instructions"]


def test_chat_loop(monkeypatch: pytest.MonkeyPatch):
    _stub_openai(monkeypatch, tool_calls_response(("add_expense", _PIZZA)))
    lines = iter(["/ayuda", "", "pizza 5", "/gastos", None])
    monkeypatch.setattr(term_ui_mod, "make_prompt_session", lambda: None)
    monkeypatch.setattr(term_ui_mod, "read_utterance", lambda **_kw: next(lines))
    result = runner.invoke(app, ["chat"])
    assert result.exit_code == 0, result.output
    assert "modo local" in result.output
    assert "Probá con" in result.output
    assert "Registré 1 gasto por" in result.output
    assert "Por categoría" in result.output


# ---- configure ---------------------------------------------------------------


def test_configure_persists_and_clears(_isolate_env):
    result = runner.invoke(
        app, ["configure", "--name", "Ana", "--ledger-url", " https://x/exec ", "--bridge"]
    )
    assert result.exit_code == 0, result.output
    state = _state(_isolate_env)
    assert state == {"user_name": "Ana", "ledger_url": "https://x/exec", "bridge_enabled": True}

    result = runner.invoke(app, ["configure", "--clear-ledger", "--no-bridge"])
    assert result.exit_code == 0
    state = _state(_isolate_env)
    assert state["ledger_url"] is None and state["bridge_enabled"] is False
    assert state["user_name"] == "Ana"


def test_configure_without_options_fails():
    result = runner.invoke(app, ["configure"])
    assert result.exit_code == 1


def test_invalid_environment_is_reported(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("GASTOBOT_POLL_DELAY", "nunca")
    result = runner.invoke(app, ["dashboard"])
    assert result.exit_code == 1
    assert "GASTOBOT_POLL_DELAY" in result.output


# ---- sync / dashboard --------------------------------------------------------


def test_sync_requires_ledger():
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "no hay planilla" in result.output


def test_sync_replaces_local_expenses(monkeypatch: pytest.MonkeyPatch, _isolate_env):
    backend = FakeSheetBackend()
    backend.rows = [
        {"id": "r1", "amount": 100, "category": "Ocio", "description": "cine", "expenseDate": "2024-01-01"},
    ]
    monkeypatch.setattr(requests, "Session", lambda: backend)
    monkeypatch.setenv("GASTOBOT_LEDGER_URL", "https://x/exec")
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 0, result.output
    assert "1 gastos" in result.output
    assert [e["id"] for e in _state(_isolate_env)["expenses"]] == ["r1"]


def test_sync_read_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch):
    backend = FakeSheetBackend()
    backend.error = requests.ConnectionError("refused")
    monkeypatch.setattr(requests, "Session", lambda: backend)
    monkeypatch.setenv("GASTOBOT_LEDGER_URL", "https://x/exec")
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "Error al leer la planilla" in result.output


def test_dashboard_shows_totals(_isolate_env):
    (_isolate_env / "state.json").write_text(
        json.dumps(
            {
                "expenses": [
                    {"id": "a", "amount": 1500, "category": "Ocio", "description": "cine", "expenseDate": "2024-01-01"},
                    {"id": "b", "amount": 3000, "category": "Transporte", "description": "taxi", "expenseDate": "2024-01-02"},
                ]
            }
        ),
        encoding="utf-8",
    )
    result = runner.invoke(app, ["dashboard"])
    assert result.exit_code == 0, result.output
    assert "4.500" in result.output
    assert "Transporte" in result.output and "Ocio" in result.output


# ---- bridge ------------------------------------------------------------------


def test_bridge_requires_token():
    result = runner.invoke(app, ["bridge"])
    assert result.exit_code == 1
    assert "TELEGRAM_BOT_TOKEN" in result.output


def test_bridge_requires_enabled_flag_and_ledger(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    result = runner.invoke(app, ["bridge"])
    assert result.exit_code == 1
    assert "configure --bridge" in result.output


# ---- delete ------------------------------------------------------------------


def _seed(state_dir, *rows) -> None:
    (state_dir / "state.json").write_text(json.dumps({"expenses": list(rows)}), encoding="utf-8")


_CINE = {"id": "a1", "amount": 1500, "category": "Ocio", "description": "cine", "expenseDate": "2024-01-05"}
_TAXI = {"id": "b2", "amount": 3000, "category": "Transporte", "description": "taxi", "expenseDate": "2024-01-02"}


def test_dashboard_lists_movements_with_ids(_isolate_env):
    _seed(_isolate_env, _CINE, _TAXI)
    result = runner.invoke(app, ["dashboard"])
    assert result.exit_code == 0, result.output
    assert "Movimientos" in result.output
    assert "05 ene" in result.output and "02 ene" in result.output
    assert "a1" in result.output and "b2" in result.output
    movements = result.output.index("Movimientos")
    assert result.output.index("cine", movements) < result.output.index("taxi", movements)


def test_delete_local_only(_isolate_env):
    _seed(_isolate_env, _CINE, _TAXI)
    result = runner.invoke(app, ["delete", "a1"])
    assert result.exit_code == 0, result.output
    assert "Borré" in result.output
    assert [e["id"] for e in _state(_isolate_env)["expenses"]] == ["b2"]


def test_delete_unknown_id_exits_nonzero(_isolate_env):
    _seed(_isolate_env, _CINE)
    result = runner.invoke(app, ["delete", "zz"])
    assert result.exit_code == 1
    assert [e["id"] for e in _state(_isolate_env)["expenses"]] == ["a1"]


def test_delete_goes_through_ledger(monkeypatch: pytest.MonkeyPatch, _isolate_env):
    backend = FakeSheetBackend()
    backend.rows = [dict(_CINE)]
    monkeypatch.setattr(requests, "Session", lambda: backend)
    monkeypatch.setenv("GASTOBOT_LEDGER_URL", "https://x/exec")
    _seed(_isolate_env, _CINE)

    result = runner.invoke(app, ["delete", "a1"])
    assert result.exit_code == 0, result.output
    assert backend.rows == []
    assert backend.requests[-1]["json"] == {"action": "delete", "id": "a1"}
    assert _state(_isolate_env)["expenses"] == []


def test_delete_kept_when_ledger_does_not_confirm(monkeypatch: pytest.MonkeyPatch, _isolate_env):
    backend = FakeSheetBackend()
    monkeypatch.setattr(requests, "Session", lambda: backend)
    monkeypatch.setenv("GASTOBOT_LEDGER_URL", "https://x/exec")
    _seed(_isolate_env, _CINE)

    result = runner.invoke(app, ["delete", "a1"])
    assert result.exit_code == 1
    assert "Error al borrar en la planilla" in result.output
    assert [e["id"] for e in _state(_isolate_env)["expenses"]] == ["a1"]

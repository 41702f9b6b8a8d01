"""Prompt and tool construction for expense interpretation.

This module builds:
- The system instructions (persona, user name, reference date, default
  reporting period).
- The user input: the utterance plus a compact, deterministic view of the
  most recent known expenses so delete requests can name real records.
- The three function-tool declarations for the OpenAI Responses API. The
  category enum comes from :mod:`gastobot.categories` and nowhere else.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from openai.types.responses import FunctionToolParam

from .categories import CATEGORIES
from .formatting import plain_amount
from .models import AddExpenseCall, DeleteExpenseCall, Expense, HistoryCall

KNOWN_EXPENSES_LIMIT: int = 20

BEGIN_EXPENSES = "BEGIN_KNOWN_EXPENSES"
END_EXPENSES = "END_KNOWN_EXPENSES"


def build_system_instructions(user_name: str, reference_date: date) -> str:
    """Return the system prompt for one utterance.

    The model needs today's date to turn "ayer" or "el lunes pasado" into
    absolute ``YYYY-MM-DD`` values.
    """

    today = reference_date.isoformat()
    month_start = reference_date.replace(day=1).isoformat()
    return (
        f"Eres GastoBot Argentina. Usuario: {user_name}. Hoy: {today}.\n"
        "\n"
        "REGLAS CRÍTICAS:\n"
        "1. NO SALUDES. NO DES EXPLICACIONES.\n"
        "2. Si el usuario cuenta uno o varios gastos, llamá a 'add_expense' una vez por "
        "cada gasto. Si no dice la fecha, usá la de hoy.\n"
        "3. Si preguntan \"¿Cuánto gasté?\", \"Mis gastos\", \"Gastos de hoy\", etc., "
        "USÁ SIEMPRE 'get_expenses_history'.\n"
        f"4. Si no especifican fecha para un reporte, asumí el mes actual ({month_start} al "
        f"{today}).\n"
        "5. Si preguntan por un periodo (ej: \"10 días\"), calculá las fechas correctas y "
        "llamá a la herramienta.\n"
        "6. Para borrar, usá 'delete_expense' con la descripción o el monto del gasto.\n"
        "7. Los montos están en pesos argentinos. Fechas siempre en formato YYYY-MM-DD.\n"
        "8. Si el mensaje no corresponde a ninguna herramienta, respondé con texto breve.\n"
        "9. Sé una herramienta, no un amigo. Sé minimalista."
    )


def render_known_expenses(
    expenses: Sequence[Expense], *, limit: int = KNOWN_EXPENSES_LIMIT
) -> str:
    """One line per expense, newest first: ``date | description | amount | category``."""

    lines = [
        f"{e.expense_date} | {e.description} | {plain_amount(e.amount)} | {e.category}"
        for e in list(expenses)[:limit]
    ]
    return "\n".join(lines) if lines else "(sin gastos)"


def build_user_input(utterance: str, known_expenses: Sequence[Expense]) -> str:
    return (
        f"Gastos recientes (más nuevo primero):\n{BEGIN_EXPENSES}\n"
        f"{render_known_expenses(known_expenses)}\n{END_EXPENSES}\n"
        "\n"
        f"Mensaje del usuario:\n{utterance}"
    )


def build_tools() -> list[FunctionToolParam]:
    """Return the three operations the model may call."""

    add_expense: FunctionToolParam = {
        "type": "function",
        "name": AddExpenseCall.name,
        "description": "Registra un nuevo gasto.",
        "parameters": {
            "type": "object",
            "properties": {
                "amount": {"type": "number", "description": "Monto en pesos"},
                "category": {
                    "type": "string",
                    "description": "Categoría del gasto",
                    "enum": list(CATEGORIES),
                },
                "description": {"type": "string", "description": "Descripción breve"},
                "expenseDate": {"type": "string", "description": "Fecha YYYY-MM-DD"},
            },
            "required": ["amount", "category", "description", "expenseDate"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    delete_expense: FunctionToolParam = {
        "type": "function",
        "name": DeleteExpenseCall.name,
        "description": "Borra un gasto.",
        "parameters": {
            "type": "object",
            "properties": {
                "searchQuery": {"type": "string", "description": "Nombre o monto"},
            },
            "required": ["searchQuery"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    history: FunctionToolParam = {
        "type": "function",
        "name": HistoryCall.name,
        "description": "Consulta historial para reportes.",
        "parameters": {
            "type": "object",
            "properties": {
                "startDate": {"type": "string", "description": "Inicio YYYY-MM-DD"},
                "endDate": {"type": "string", "description": "Fin YYYY-MM-DD"},
                "filterDescription": {
                    "type": "string",
                    "description": "Contexto de la consulta",
                },
            },
            "additionalProperties": False,
        },
        # Optional properties are not allowed under strict schemas.
        "strict": False,
    }
    return [add_expense, delete_expense, history]

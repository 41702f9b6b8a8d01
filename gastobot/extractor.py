"""Conversational intent extraction via the OpenAI Responses API.

:meth:`Extractor.interpret` sends one utterance (plus date, user name and the
most recent expenses) to the model with three function tools declared and
returns either the typed calls the model made or its text reply.

Failures never escape: unreachable model, bad credentials and malformed
tool arguments all come back as a :class:`~gastobot.models.Text` carrying a
user-facing diagnostic. No client-side timeout is applied; the SDK default
governs how long a call may take.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

import openai
from openai import OpenAI

from . import prompting
from .config import DEFAULT_MODEL
from .errors import ExtractionError
from .logging_setup import get_logger
from .models import Calls, Expense, InterpretationResult, StructuredCall, Text, parse_call

NO_UNDERSTANDING_REPLY = "No entendí la solicitud."

_logger = get_logger("gastobot.extractor")


def _create_client() -> OpenAI:
    return OpenAI()


def _field(item: Any, key: str) -> Any:
    # SDK objects expose attributes; raw payloads (and some stubs) are dicts.
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def _extract_calls(resp: Any) -> list[StructuredCall]:
    """Decode every ``function_call`` output item, in order.

    One invalid call rejects the whole response.
    """

    calls: list[StructuredCall] = []
    for item in _field(resp, "output") or []:
        if _field(item, "type") != "function_call":
            continue
        name = _field(item, "name")
        if not isinstance(name, str):
            raise ExtractionError("function call without a name")
        calls.append(parse_call(name, _field(item, "arguments")))
    return calls


def _extract_text(resp: Any) -> str:
    text = _field(resp, "output_text")
    if isinstance(text, str) and text.strip():
        return text.strip()
    return NO_UNDERSTANDING_REPLY


class Extractor:
    """Turns free text into :class:`Calls` or :class:`Text`.

    Parameters
    ----------
    model:
        Responses API model name.
    client_factory:
        Zero-argument callable returning an ``OpenAI``-shaped client. A fresh
        client is created per utterance so a key added to the environment
        after startup is picked up.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.model = model
        self._client_factory = client_factory or _create_client

    def interpret(
        self,
        utterance: str,
        known_expenses: Sequence[Expense],
        user_name: str,
        reference_date: date,
    ) -> InterpretationResult:
        t0 = time.perf_counter()
        try:
            client = self._client_factory()
            resp = client.responses.create(
                model=self.model,
                instructions=prompting.build_system_instructions(user_name, reference_date),
                input=prompting.build_user_input(utterance, known_expenses),
                tools=prompting.build_tools(),
                tool_choice="auto",
                parallel_tool_calls=True,
            )
            calls = _extract_calls(resp)
        except openai.APIStatusError as e:
            _logger.error("extractor:failed status=%d error=%s", e.status_code, e.__class__.__name__)
            return Text(f"⚠️ Error de la IA ({e.status_code}): {e.message}")
        except openai.OpenAIError as e:
            _logger.error("extractor:failed error=%s", e.__class__.__name__)
            return Text(f"⚠️ Error de comunicación con la IA: {e}")
        except ExtractionError as e:
            _logger.error("extractor:invalid_output detail=%s", e)
            return Text(f"⚠️ La IA devolvió una respuesta inválida: {e}")

        dt_ms = (time.perf_counter() - t0) * 1000.0
        if calls:
            _logger.info(
                "extractor:calls count=%d names=%s latency_ms=%.2f",
                len(calls),
                ",".join(c.name for c in calls),
                dt_ms,
            )
            return Calls(tuple(calls))
        _logger.info("extractor:text latency_ms=%.2f", dt_ms)
        return Text(_extract_text(resp))

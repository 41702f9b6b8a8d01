"""HTTP client for the spreadsheet-backed remote ledger.

The ledger is a single user-supplied URL (typically an Apps Script web app)
that accepts JSON ``POST`` bodies with an ``action`` field:

| action    | request body                              | success body                          |
|-----------|-------------------------------------------|---------------------------------------|
| list      | ``{"action": "list"}``                    | ``{"status": "success", "data": [...]}`` |
| bulkAdd   | ``{"action": "bulkAdd", "expenses": [...]}`` | ``{"status": "success", "count": N}`` |
| delete    | ``{"action": "delete", "id": ...}``       | ``{"status": "deleted", "id": ...}``  |

Script-backed endpoints answer ``200`` for almost everything, so the body's
``status`` field is the authoritative success signal. The HTTP status is
only consulted when the body is not a JSON object or carries no ``status``.
Apps Script replies to ``POST`` with a ``302`` to a content URL; ``requests``
follows it as a ``GET``, which is what the endpoint expects.

Dates always travel as ``YYYY-MM-DD``; any locale formatting happens on the
sheet side.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import requests
from pydantic import ValidationError

from .config import DEFAULT_LEDGER_TIMEOUT_SEC
from .errors import (
    LedgerFormatError,
    LedgerNotFoundError,
    LedgerReadError,
    LedgerTimeoutError,
    LedgerWriteError,
)
from .logging_setup import get_logger
from .models import Expense

_WRITE_TIMEOUT_SEC: float = 15.0

_logger = get_logger("gastobot.ledger")


def _decode_body(resp: requests.Response) -> dict[str, Any] | None:
    """Return the JSON object body, or ``None`` when it is not one."""

    try:
        body = resp.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _remote_message(body: dict[str, Any], fallback: str) -> str:
    msg = body.get("message") or body.get("error")
    return str(msg) if msg else fallback


class LedgerClient:
    """Remote ledger operations over one endpoint URL.

    Parameters
    ----------
    url:
        The endpoint every action is posted to.
    timeout:
        Seconds allowed for ``list`` before :class:`LedgerTimeoutError`.
    write_timeout:
        Seconds allowed for ``bulkAdd`` and ``delete``.
    http:
        Optional ``requests.Session`` (tests inject a fake).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_LEDGER_TIMEOUT_SEC,
        write_timeout: float = _WRITE_TIMEOUT_SEC,
        http: requests.Session | None = None,
    ) -> None:
        if not url or not url.strip():
            raise ValueError("ledger url must be non-empty")
        self.url = url.strip()
        self.timeout = timeout
        self.write_timeout = write_timeout
        self._http = http or requests.Session()

    def _post(self, payload: dict[str, Any], *, timeout: float) -> requests.Response:
        return self._http.post(
            self.url,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    # ---- list ----------------------------------------------------------------

    def list_expenses(self) -> list[Expense]:
        """Fetch every record in sheet order (oldest row first).

        Raises
        ------
        LedgerTimeoutError
            No answer within ``timeout`` seconds.
        LedgerFormatError
            The body is not the expected JSON shape.
        LedgerReadError
            Any other failure (connection refused, DNS, remote error status).
        """

        t0 = time.perf_counter()
        try:
            resp = self._post({"action": "list"}, timeout=self.timeout)
        except requests.Timeout as e:
            _logger.warning("ledger:list_timeout timeout_s=%.1f", self.timeout)
            raise LedgerTimeoutError(
                f"La planilla no respondió en {self.timeout:g} segundos."
            ) from e
        except requests.RequestException as e:
            _logger.warning("ledger:list_unreachable error=%s", e.__class__.__name__)
            raise LedgerReadError("No pude conectarme con la planilla.") from e

        body = _decode_body(resp)
        if body is None:
            if not resp.ok:
                raise LedgerReadError(f"La planilla respondió HTTP {resp.status_code}.")
            # A 200 HTML page is the usual sign of a login wall or the editor URL.
            raise LedgerFormatError("La planilla no devolvió JSON.")

        status = body.get("status")
        if status is None and not resp.ok:
            raise LedgerReadError(f"La planilla respondió HTTP {resp.status_code}.")
        if status not in (None, "success"):
            if status == "error":
                raise LedgerReadError(
                    f"La planilla rechazó el pedido: {_remote_message(body, 'error')}."
                )
            raise LedgerFormatError(f"Respuesta inesperada de la planilla (status={status!r}).")

        rows = body.get("data")
        if not isinstance(rows, list):
            raise LedgerFormatError("La respuesta de la planilla no trae la lista de gastos.")

        expenses: list[Expense] = []
        skipped = 0
        for row in rows:
            try:
                expenses.append(Expense.model_validate(row))
            except ValidationError:
                skipped += 1
        if skipped:
            _logger.warning("ledger:list_rows_skipped skipped=%d kept=%d", skipped, len(expenses))
        _logger.info(
            "ledger:list_done count=%d latency_ms=%.2f",
            len(expenses),
            (time.perf_counter() - t0) * 1000.0,
        )
        return expenses

    # ---- writes --------------------------------------------------------------

    def bulk_add(self, expenses: Sequence[Expense]) -> int:
        """Append ``expenses`` in one round trip; returns how many were stored.

        Either the whole batch is acknowledged or :class:`LedgerWriteError` is
        raised carrying the remote message verbatim. An empty batch sends
        nothing.
        """

        if not expenses:
            return 0
        n = len(expenses)
        t0 = time.perf_counter()
        try:
            resp = self._post(
                {"action": "bulkAdd", "expenses": [e.to_wire() for e in expenses]},
                timeout=self.write_timeout,
            )
        except requests.RequestException as e:
            _logger.warning("ledger:bulk_add_failed count=%d error=%s", n, e.__class__.__name__)
            raise LedgerWriteError(f"no pude conectarme con la planilla ({e})") from e

        body = _decode_body(resp)
        status = body.get("status") if body is not None else None
        if status is None:
            if not resp.ok:
                raise LedgerWriteError(f"la planilla respondió HTTP {resp.status_code}")
        elif status == "success":
            count = body.get("count") if body is not None else None
            if isinstance(count, int) and count != n:
                raise LedgerWriteError(f"la planilla guardó {count} de {n} gastos")
        elif status == "error":
            raise LedgerWriteError(_remote_message(body or {}, "error de la planilla"))
        else:
            raise LedgerWriteError(f"respuesta inesperada de la planilla: {status}")

        _logger.info(
            "ledger:bulk_add_done count=%d latency_ms=%.2f",
            n,
            (time.perf_counter() - t0) * 1000.0,
        )
        return n

    def delete(self, expense_id: str) -> None:
        """Remove one record by id.

        A ``not_found`` answer raises :class:`LedgerNotFoundError`; it is
        never treated as success.
        """

        try:
            resp = self._post({"action": "delete", "id": expense_id}, timeout=self.write_timeout)
        except requests.RequestException as e:
            _logger.warning("ledger:delete_failed id=%s error=%s", expense_id, e.__class__.__name__)
            raise LedgerWriteError(f"no pude conectarme con la planilla ({e})") from e

        body = _decode_body(resp)
        status = body.get("status") if body is not None else None
        if status is None:
            if not resp.ok:
                raise LedgerWriteError(f"la planilla respondió HTTP {resp.status_code}")
        elif status == "not_found":
            raise LedgerNotFoundError(expense_id)
        elif status == "error":
            raise LedgerWriteError(_remote_message(body or {}, "error de la planilla"))
        elif status != "deleted":
            raise LedgerWriteError(f"respuesta inesperada de la planilla: {status}")

        _logger.info("ledger:delete_done id=%s", expense_id)

"""Exception taxonomy for ``gastobot``.

Ledger read failures propagate to the caller; ledger write failures are
caught by the reconciler and rendered as chat fragments; extraction failures
never leave :func:`gastobot.extractor.Extractor.interpret`.
"""

from __future__ import annotations

LEDGER_CONFIG_HINT = (
    "Revisá que la URL de la planilla sea la del despliegue web (termina en /exec) "
    "y que el acceso esté configurado como 'Cualquier persona'."
)


class GastoBotError(Exception):
    """Base class for all package errors."""


class LedgerError(GastoBotError):
    """A call to the remote ledger failed."""


class LedgerReadError(LedgerError):
    """Listing the ledger failed; the message carries a configuration hint."""

    def __init__(self, message: str, *, hint: str = LEDGER_CONFIG_HINT) -> None:
        self.hint = hint
        super().__init__(f"{message} {hint}" if hint else message)


class LedgerTimeoutError(LedgerReadError):
    """The ledger did not answer ``list`` within the configured timeout."""


class LedgerFormatError(LedgerReadError):
    """The ledger answered ``list`` with an unparsable or unexpected body."""


class LedgerWriteError(LedgerError):
    """``bulkAdd`` or ``delete`` was rejected or could not be delivered."""


class LedgerNotFoundError(LedgerWriteError):
    """The ledger has no record with the requested id."""

    def __init__(self, expense_id: str) -> None:
        self.expense_id = expense_id
        super().__init__(f"el gasto {expense_id} no existe en la planilla")


class ExtractionError(GastoBotError):
    """Model output could not be turned into valid structured calls."""


class TelegramError(GastoBotError):
    """The Telegram Bot API answered with ``ok: false``."""

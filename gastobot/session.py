"""Chat session: the glue between transcript, extractor, reconciler and store.

One call to :meth:`ChatSession.handle_utterance` appends the user's message,
reloads the expense list from the state file, interprets the text, reconciles
the resulting calls, applies the local mutations, persists the expense list
and appends exactly one bot message.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

from .config import Settings
from .errors import LedgerError
from .extractor import Extractor
from .ledger import LedgerClient
from .logging_setup import get_logger
from .models import ChatMessage, ReconciliationOutcome, Text
from .reconciler import DEFAULT_POLICY, ReconcilePolicy, delete_expense_by_id, reconcile
from .store import (
    ChatTranscript,
    JsonStateFile,
    LocalExpenseStore,
    StateStorage,
    expenses_from_state,
    expenses_to_state,
)

WELCOME_MESSAGE = (
    "¡Hola! Soy GastoBot Argentina 🇦🇷\n\n"
    'Podés decirme "Gasté 5000 en pizza hoy" o "Ayer gasté 3000 en taxi". \n\n'
    "⚠️ Si no me decís fecha, anoto para hoy."
)

_logger = get_logger("gastobot.session")


class ChatSession:
    """Processes utterances from one user against one local store.

    Parameters
    ----------
    store, transcript:
        Local state owned by this session.
    extractor:
        Intent extractor (model client).
    settings:
        Resolved settings; supplies the default user name.
    storage:
        Where the expense list is written after every mutation. ``None``
        keeps everything in memory.
    ledger:
        Remote ledger, or ``None`` for local-only mode.
    today:
        Reference-date provider (tests pin it).
    """

    def __init__(
        self,
        store: LocalExpenseStore,
        transcript: ChatTranscript,
        extractor: Extractor,
        *,
        settings: Settings,
        storage: StateStorage | None = None,
        ledger: LedgerClient | None = None,
        policy: ReconcilePolicy = DEFAULT_POLICY,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.transcript = transcript
        self.extractor = extractor
        self.settings = settings
        self.storage = storage
        self.ledger = ledger
        self.policy = policy
        self._today = today
        self.transcript.append(WELCOME_MESSAGE, "bot")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        storage: JsonStateFile,
        extractor: Extractor | None = None,
    ) -> ChatSession:
        """Build a session from persisted state (expenses) and settings."""

        state = storage.load()
        ledger = (
            LedgerClient(settings.ledger_url, timeout=settings.ledger_timeout_sec)
            if settings.ledger_url
            else None
        )
        return cls(
            LocalExpenseStore(expenses_from_state(state)),
            ChatTranscript(),
            extractor or Extractor(model=settings.model),
            settings=settings,
            storage=storage,
            ledger=ledger,
        )

    def refresh(self) -> None:
        """Reload the expense list from storage.

        The state file is the shared store for every entry point (terminal
        chat, one-shot ``say``, Telegram bridge), so each turn starts from
        what is on disk rather than from this process's last copy.
        """

        if self.storage is None:
            return
        self.store.replace_all(expenses_from_state(self.storage.load()))

    def _persist(self) -> None:
        if self.storage is None:
            return
        state = self.storage.load()
        state["expenses"] = expenses_to_state(self.store.all())
        self.storage.save(state)

    def _apply(self, outcome: ReconciliationOutcome) -> None:
        for expense_id in outcome.expenses_to_remove:
            self.store.remove(expense_id)
        for expense in outcome.expenses_to_add:
            self.store.add(expense)
        if outcome.expenses_to_add or outcome.expenses_to_remove:
            self._persist()

    def handle_utterance(self, text: str, *, user_name: str | None = None) -> ChatMessage | None:
        """Process one utterance and return the bot reply (``None`` for blank input)."""

        text = text.strip()
        if not text:
            return None
        self.transcript.append(text, "user")

        try:
            reply = self._process(text, user_name or self.settings.user_name)
        except Exception as e:  # noqa: BLE001 - the chat must always answer
            _logger.exception("session:utterance_failed error=%s", e.__class__.__name__)
            reply = f"⚠️ Error: {str(e) or 'Problema de conexión.'}"
        return self.transcript.append(reply, "bot")

    def _process(self, text: str, user_name: str) -> str:
        self.refresh()
        result = self.extractor.interpret(text, self.store.all(), user_name, self._today())
        if isinstance(result, Text):
            return result.text

        outcome = reconcile(result.calls, self.store.all(), self.ledger, policy=self.policy)
        self._apply(outcome)
        return outcome.response_text

    def delete_by_id(self, expense_id: str) -> ReconciliationOutcome:
        """Delete one record by id (dashboard delete), remote first when a ledger is set."""

        self.refresh()
        outcome = delete_expense_by_id(
            expense_id, self.store.all(), self.ledger, policy=self.policy
        )
        self._apply(outcome)
        return outcome

    def sync_from_ledger(self) -> int:
        """Replace the local list with the ledger's contents.

        Remote ids are kept. The sheet lists oldest rows first, so the order
        is reversed to keep newest-first locally. Raises
        :class:`~gastobot.errors.LedgerReadError` on failure.
        """

        if self.ledger is None:
            raise LedgerError("No hay una planilla configurada.")
        remote = self.ledger.list_expenses()
        self.store.replace_all(reversed(remote))
        self._persist()
        _logger.info("session:synced count=%d", len(self.store))
        return len(self.store)

"""Public interface for the ``gastobot`` package.

Symbol re-exports only; no runtime logic lives here.
"""

from .categories import CATEGORIES, CATEGORY_COLORS, normalize_category
from .errors import (
    ExtractionError,
    GastoBotError,
    LedgerError,
    LedgerFormatError,
    LedgerNotFoundError,
    LedgerReadError,
    LedgerTimeoutError,
    LedgerWriteError,
    TelegramError,
)
from .extractor import Extractor
from .ledger import LedgerClient
from .models import (
    AddExpenseCall,
    Calls,
    ChatMessage,
    DeleteExpenseCall,
    Expense,
    HistoryCall,
    InterpretationResult,
    ReconciliationOutcome,
    StructuredCall,
    Text,
)
from .reconciler import (
    CONFIRMED_ON_DELETE,
    DEFAULT_POLICY,
    OPTIMISTIC_ON_ADD,
    ReconcilePolicy,
    SyncPolicy,
    reconcile,
)
from .session import ChatSession
from .store import ChatTranscript, JsonStateFile, LocalExpenseStore

__all__ = [
    # Categories
    "CATEGORIES",
    "CATEGORY_COLORS",
    "normalize_category",
    # Components
    "Extractor",
    "LedgerClient",
    "ChatSession",
    "LocalExpenseStore",
    "ChatTranscript",
    "JsonStateFile",
    "reconcile",
    # Policies
    "SyncPolicy",
    "ReconcilePolicy",
    "DEFAULT_POLICY",
    "OPTIMISTIC_ON_ADD",
    "CONFIRMED_ON_DELETE",
    # Models / types
    "Expense",
    "ChatMessage",
    "AddExpenseCall",
    "DeleteExpenseCall",
    "HistoryCall",
    "StructuredCall",
    "Calls",
    "Text",
    "InterpretationResult",
    "ReconciliationOutcome",
    # Errors
    "GastoBotError",
    "LedgerError",
    "LedgerReadError",
    "LedgerTimeoutError",
    "LedgerFormatError",
    "LedgerWriteError",
    "LedgerNotFoundError",
    "ExtractionError",
    "TelegramError",
]

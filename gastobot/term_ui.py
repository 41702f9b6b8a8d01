"""Tiny terminal UI helpers (prompt_toolkit-based) for the chat command.

Kept apart from the session logic so the input handling can be driven from a
pipe in tests.
"""

from __future__ import annotations

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.validation import ValidationError, Validator

EXIT_COMMANDS: frozenset[str] = frozenset({"/salir", "/exit", "/quit"})
HELP_COMMAND = "/ayuda"
SLASH_COMMANDS: tuple[str, ...] = ("/ayuda", "/gastos", "/salir")

_MAX_UTTERANCE_LEN = 500


class _UtteranceValidator(Validator):
    def validate(self, document) -> None:
        if len(document.text) > _MAX_UTTERANCE_LEN:
            raise ValidationError(
                message=f"Máximo {_MAX_UTTERANCE_LEN} caracteres por mensaje",
                cursor_position=_MAX_UTTERANCE_LEN,
            )


def make_prompt_session() -> PromptSession:
    return PromptSession(history=InMemoryHistory())


def read_utterance(
    *,
    message: str = "Vos: ",
    session: PromptSession | None = None,
) -> str | None:
    """Prompt for one chat line.

    Returns the stripped text (possibly empty), or ``None`` when the user
    ends input (Ctrl-D / Ctrl-C) or types an exit command.
    """

    sess = session or make_prompt_session()
    completer = WordCompleter(list(SLASH_COMMANDS), ignore_case=True, sentence=True)
    try:
        text = sess.prompt(
            message,
            completer=completer,
            complete_while_typing=False,
            validator=_UtteranceValidator(),
            validate_while_typing=False,
        )
    except (EOFError, KeyboardInterrupt):
        return None
    text = text.strip()
    if text.lower() in EXIT_COMMANDS:
        return None
    return text

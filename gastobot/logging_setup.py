"""Logging configuration for ``gastobot``.

Library modules only ever call ``get_logger("gastobot.<module>")``. The CLI
calls :func:`configure_logging` once at startup, which attaches one stream
handler to the ``"gastobot"`` logger.

Two things differ from a bare ``basicConfig``:

- Credentials never reach the output. The Telegram token travels inside Bot
  API URLs (``/bot<token>/getUpdates``) and OpenAI keys start with ``sk-``;
  :class:`_RedactSecrets` masks both on every record, including records from
  the HTTP libraries below.
- ``urllib3``, ``httpx`` and ``openai`` log request URLs at DEBUG/INFO. They
  stay at WARNING unless gastobot itself runs at DEBUG.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import IO

PKG_LOGGER_NAME = "gastobot"
LOG_LEVEL_ENV = "GASTOBOT_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_CHATTY_LIBRARIES: tuple[str, ...] = ("urllib3", "httpx", "openai")

_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"/bot\d+:[A-Za-z0-9_-]+"), "/bot<redacted>"),
    (re.compile(r"\bsk-[A-Za-z0-9_-]{8,}"), "sk-<redacted>"),
)

_configured = False


def redact(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class _RedactSecrets(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            # Freeze the rendered text so formatters don't re-apply raw args.
            record.msg = cleaned
            record.args = None
        return True


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    # getLevelName returns "Level X" for unknown names.
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach the package handler. Later calls are no-ops.

    Parameters
    ----------
    level:
        ``int`` or level name; ``None`` reads ``GASTOBOT_LOG_LEVEL`` and
        falls back to ``INFO``.
    fmt:
        Format string, ``DEFAULT_FORMAT`` when omitted.
    stream:
        Destination, ``sys.stderr`` at call time when omitted.
    """

    global _configured
    if _configured:
        return

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    handler.addFilter(_RedactSecrets())

    logger = logging.getLogger(PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False

    library_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LIBRARIES:
        lib = logging.getLogger(name)
        lib.setLevel(library_level)
        # Same handler, so library records pass through the redaction filter too.
        lib.addHandler(handler)
        lib.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(PKG_LOGGER_NAME)
    if not _configured and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)

"""Telegram bridge: feeds bot messages into the same chat pipeline.

- :class:`TelegramClient`: the two Bot API calls the bridge needs
  (``getUpdates`` long poll and ``sendMessage``).
- :class:`BridgeLoop`: repeating poll task. It owns the last-processed
  update cursor, persists it through the injected storage after every update
  and never handles an update whose id is at or below the cursor.

Stopping: :meth:`BridgeLoop.stop` (or ``should_run`` turning false) prevents
the next cycle and interrupts the inter-poll delay, but an update already
being handled runs to completion. :func:`stop_on_interrupt` routes Ctrl-C to
:meth:`BridgeLoop.stop`.
"""

from __future__ import annotations

import contextlib
import signal
import threading
from collections.abc import Callable, Iterator
from typing import Any, TypeAlias

import requests

from .errors import TelegramError
from .logging_setup import get_logger
from .store import StateStorage

API_BASE = "https://api.telegram.org"
CURSOR_KEY = "telegram_last_update_id"

_LONG_POLL_SEC: int = 30
_SEND_TIMEOUT_SEC: float = 15.0

MessageHandler: TypeAlias = Callable[[str, str | None], str]

_logger = get_logger("gastobot.telegram")


def to_telegram_markdown(text: str) -> str:
    # Legacy Markdown mode bolds with single asterisks.
    return text.replace("**", "*")


class TelegramClient:
    def __init__(
        self,
        token: str,
        *,
        http: requests.Session | None = None,
        long_poll_timeout: int = _LONG_POLL_SEC,
    ) -> None:
        if not token:
            raise ValueError("telegram token must be non-empty")
        self._token = token
        self._http = http or requests.Session()
        self.long_poll_timeout = long_poll_timeout

    def _url(self, method: str) -> str:
        return f"{API_BASE}/bot{self._token}/{method}"

    @staticmethod
    def _result(resp: requests.Response, method: str) -> Any:
        try:
            body = resp.json()
        except ValueError as e:
            raise TelegramError(f"{method}: HTTP {resp.status_code} without JSON body") from e
        if not isinstance(body, dict) or not body.get("ok"):
            desc = body.get("description") if isinstance(body, dict) else None
            raise TelegramError(f"{method}: {desc or 'request rejected'}")
        return body.get("result")

    def get_updates(self, offset: int) -> list[dict[str, Any]]:
        """Long-poll for updates with ``update_id >= offset``."""

        resp = self._http.get(
            self._url("getUpdates"),
            params={"offset": offset, "timeout": self.long_poll_timeout},
            # Leave headroom over the server-side long-poll window.
            timeout=self.long_poll_timeout + 10,
        )
        result = self._result(resp, "getUpdates")
        if not isinstance(result, list):
            raise TelegramError("getUpdates: result is not a list")
        return [u for u in result if isinstance(u, dict)]

    def send_message(self, chat_id: int, text: str) -> None:
        payload = {"chat_id": chat_id, "text": to_telegram_markdown(text), "parse_mode": "Markdown"}
        resp = self._http.post(self._url("sendMessage"), json=payload, timeout=_SEND_TIMEOUT_SEC)
        try:
            self._result(resp, "sendMessage")
        except TelegramError:
            # Unbalanced markup in a description makes Telegram reject the
            # whole message; resend it as plain text.
            if resp.status_code != 400:
                raise
            plain = {"chat_id": chat_id, "text": text}
            resp = self._http.post(self._url("sendMessage"), json=plain, timeout=_SEND_TIMEOUT_SEC)
            self._result(resp, "sendMessage")


class BridgeLoop:
    """Poll Telegram and answer each text message through ``handler``.

    Parameters
    ----------
    client:
        Bot API client.
    handler:
        ``handler(text, sender_first_name) -> reply``; normally
        ``ChatSession.handle_utterance`` wrapped to return the reply text.
    storage:
        Persists the cursor under ``telegram_last_update_id``.
    poll_delay:
        Seconds to wait between cycles.
    should_run:
        Checked before every cycle; returning ``False`` ends :meth:`run`
        (bridge disabled or ledger URL cleared).
    """

    def __init__(
        self,
        client: TelegramClient,
        handler: MessageHandler,
        storage: StateStorage,
        *,
        poll_delay: float = 3.0,
        should_run: Callable[[], bool] | None = None,
    ) -> None:
        self._client = client
        self._handler = handler
        self._storage = storage
        self._poll_delay = poll_delay
        self._should_run = should_run or (lambda: True)
        self._stop = threading.Event()
        self._last_update_id = self._load_cursor()

    @property
    def last_update_id(self) -> int:
        return self._last_update_id

    def _load_cursor(self) -> int:
        value = self._storage.load().get(CURSOR_KEY)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return value
        return 0

    def _save_cursor(self) -> None:
        state = self._storage.load()
        state[CURSOR_KEY] = self._last_update_id
        self._storage.save(state)

    def _answer(self, message: dict[str, Any]) -> None:
        text = message.get("text")
        chat = message.get("chat") or {}
        chat_id = chat.get("id") if isinstance(chat, dict) else None
        if not isinstance(text, str) or not text.strip() or chat_id is None:
            return
        sender = message.get("from") or {}
        first_name = sender.get("first_name") if isinstance(sender, dict) else None

        try:
            reply = self._handler(text, first_name)
        except Exception as e:  # noqa: BLE001 - one bad message must not stall the bridge
            _logger.exception("bridge:handler_failed chat_id=%s", chat_id)
            reply = f"⚠️ Error: {e}"
        try:
            self._client.send_message(chat_id, reply)
        except (requests.RequestException, TelegramError) as e:
            _logger.warning("bridge:send_failed chat_id=%s error=%s", chat_id, e)

    def poll_once(self) -> int:
        """Run one poll cycle; returns how many new updates were consumed."""

        try:
            updates = self._client.get_updates(offset=self._last_update_id + 1)
        except (requests.RequestException, TelegramError) as e:
            _logger.warning("bridge:poll_failed error=%s", e.__class__.__name__)
            return 0

        consumed = 0
        for update in sorted(updates, key=lambda u: u.get("update_id", 0)):
            update_id = update.get("update_id")
            if not isinstance(update_id, int) or isinstance(update_id, bool):
                _logger.warning("bridge:update_without_id")
                continue
            if update_id <= self._last_update_id:
                continue
            message = update.get("message")
            if isinstance(message, dict):
                self._answer(message)
            self._last_update_id = update_id
            self._save_cursor()
            consumed += 1
        if consumed:
            _logger.info(
                "bridge:cycle_done consumed=%d last_update_id=%d", consumed, self._last_update_id
            )
        return consumed

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        _logger.info("bridge:start last_update_id=%d", self._last_update_id)
        while not self._stop.is_set() and self._should_run():
            self.poll_once()
            self._stop.wait(self._poll_delay)
        _logger.info("bridge:stopped last_update_id=%d", self._last_update_id)


@contextlib.contextmanager
def stop_on_interrupt(loop: BridgeLoop) -> Iterator[None]:
    """Turn Ctrl-C into :meth:`BridgeLoop.stop` while the block runs.

    While active, SIGINT never raises ``KeyboardInterrupt``: the current
    cycle (handler, reply, cursor save) completes and then the loop exits.
    Must be entered from the main thread.
    """

    def _request_stop(signum: int, frame: Any) -> None:
        _logger.info("bridge:stop_requested signal=%d", signum)
        loop.stop()

    previous = signal.signal(signal.SIGINT, _request_stop)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)

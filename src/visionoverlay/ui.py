from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class UiDispatcher:
    """Message queue drained by the thread that owns the overlay and session state.

    Worker threads never touch UI state directly; they ``post`` a callable and
    the UI thread runs it on its next ``drain``.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[tuple[Callable[..., Any], tuple]] = queue.SimpleQueue()
        self._owner: int | None = None

    def bind_current_thread(self) -> None:
        self._owner = threading.get_ident()

    def is_ui_thread(self) -> bool:
        """True on the bound thread, or anywhere before a thread is bound."""
        return self._owner is None or self._owner == threading.get_ident()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def drain(self) -> int:
        """Run queued messages in order; returns how many ran."""
        ran = 0
        while True:
            try:
                fn, args = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                fn(*args)
            except Exception:
                logger.exception("UI message %s failed", getattr(fn, "__name__", fn))
            ran += 1
        return ran

    def pending(self) -> int:
        return self._queue.qsize()

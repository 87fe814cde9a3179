"""
IN-APP TOASTS

Purpose:
- Non-blocking inline notices (toast + log), never persisted
- Wrap UI actions so any single failure becomes a notice, not a crash
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

from shipexpress.core.errors import ShipExpressError

logger = logging.getLogger(__name__)

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"

MAX_TOASTS = 50


@dataclass(frozen=True)
class Toast:
    level: str
    text: str
    timestamp: str


class ToastLog:
    """Session-level toast queue consumed by whatever renders the UI."""

    def __init__(self, limit: int = MAX_TOASTS):
        self.limit = limit
        self._toasts: List[Toast] = []
        self._listeners: List[Callable[[Toast], None]] = []

    def add_listener(self, listener: Callable[[Toast], None]) -> None:
        self._listeners.append(listener)

    def push(self, level: str, text: str) -> Toast:
        toast = Toast(level=level, text=text, timestamp=datetime.now().isoformat())
        self._toasts.append(toast)
        del self._toasts[:-self.limit]
        for listener in self._listeners:
            listener(toast)
        return toast

    def info(self, text: str) -> Toast:
        return self.push(INFO, text)

    def success(self, text: str) -> Toast:
        return self.push(SUCCESS, text)

    def warning(self, text: str) -> Toast:
        return self.push(WARNING, text)

    def error(self, text: str) -> Toast:
        return self.push(ERROR, text)

    @property
    def toasts(self) -> List[Toast]:
        return list(self._toasts)

    def drain(self) -> List[Toast]:
        toasts, self._toasts = self._toasts, []
        return toasts


def run_action(
    toasts: ToastLog,
    action: Callable[..., Any],
    *args,
    success_message: Optional[str] = None,
    **kwargs,
) -> Any:
    """
    Run a UI action; domain failures become an error toast and return None.

    Programming errors (anything that is not a ShipExpressError) propagate.
    """
    try:
        result = action(*args, **kwargs)
    except ShipExpressError as e:
        logger.warning(f"{getattr(action, '__name__', 'action')} failed: {e}")
        toasts.error(str(e))
        return None

    if success_message:
        toasts.success(success_message)
    return result

"""Transient UI notices ("Added to cart"), delivered fire-and-forget."""

from dataclasses import dataclass
from typing import Callable

from libs.common.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Notice:
    message: str
    level: str = "success"


NoticeListener = Callable[[Notice], None]


class Notifier:
    def __init__(self):
        self._listeners: list[NoticeListener] = []

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, message: str, level: str = "success") -> None:
        notice = Notice(message, level)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                # Listener errors never reach the cart operation
                logger.exception("Notice listener failed for %r", message)

# notifier.py

import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)


class Notifier:
    """Reports user-facing success/failure messages. Passed in explicitly."""

    def success(self, message: str) -> None:
        raise NotImplementedError

    def error(self, message: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)


class CollectingNotifier(Notifier):
    """
    Keeps messages so a UI (or a test) can show them later.

    Messages are ``(level, text)`` tuples with level "success" or "error".
    """

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def drain(self) -> List[Tuple[str, str]]:
        out, self.messages = self.messages, []
        return out

    @property
    def last(self):
        return self.messages[-1] if self.messages else None

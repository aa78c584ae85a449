"""User-visible notification surface.

Notifications are fire-and-forget and used only for auth failures that need
the user to act (logging in again).
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    def notify(self, title: str, message: str) -> None:
        """Show a message to the user. Must not raise."""
        pass


class LoggingNotifier(Notifier):
    """Emits notifications as warnings on the askguard logger."""

    def notify(self, title: str, message: str) -> None:
        logger.warning(f'{title}: {message}')


class RecordingNotifier(Notifier):
    """Keeps every notification in memory, for tests and headless runs."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def notify(self, title: str, message: str) -> None:
        self.messages.append((title, message))

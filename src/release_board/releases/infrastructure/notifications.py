"""
User Interaction Adapters
=========================

Notifier and confirmation implementations for the HTTP surface.

The board API has no dialog of its own: alerts are queued until the client
drains them, and confirmation is an explicit flag on the request.
"""

from collections import deque
from typing import Deque, List

from release_board.releases.application.services import IConfirmation, INotifier
from release_board.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class QueuedNotifier(INotifier):
    """Keeps alerts until the client collects them."""

    def __init__(self, max_messages: int = 50):
        self._messages: Deque[str] = deque(maxlen=max_messages)

    def alert(self, message: str) -> None:
        logger.warning("User alert", extra={"alert": message})
        self._messages.append(message)

    def pending(self) -> List[str]:
        return list(self._messages)

    def drain(self) -> List[str]:
        messages = list(self._messages)
        self._messages.clear()
        return messages


class StaticConfirmation(IConfirmation):
    """Answers every prompt with a fixed decision taken by the caller."""

    def __init__(self, confirmed: bool):
        self._confirmed = confirmed

    async def confirm(self, prompt: str) -> bool:
        logger.debug("Confirmation requested", extra={"prompt": prompt, "confirmed": self._confirmed})
        return self._confirmed

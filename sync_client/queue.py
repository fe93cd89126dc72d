"""
Bounded FIFO of outbound messages held while the session is not usable.
"""

from collections import deque
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class BoundedMessageQueue:
    """FIFO with drop-oldest overflow."""

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._items: deque[dict[str, Any]] = deque()
        self.dropped = 0

    def put(self, message: dict[str, Any]) -> None:
        self._items.append(message)
        if len(self._items) > self.max_size:
            oldest = self._items.popleft()
            self.dropped += 1
            logger.warning(
                "Outbound queue full, dropped oldest message",
                type=oldest.get("type"),
                max_size=self.max_size,
            )

    def drain(self) -> list[dict[str, Any]]:
        """Remove and return every queued message in original order."""
        items = list(self._items)
        self._items.clear()
        return items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

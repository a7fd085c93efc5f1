"""Bounded conversation history.

One history is shared by every request served by the process; it is not
scoped per client. Appends past the cap evict the oldest messages first.
"""
import threading
from collections import deque
from typing import Iterable, List
import structlog

from docqa import config
from docqa.rag.models import ConversationMessage

logger = structlog.get_logger()


class ConversationHistory:
    """Ordered, capped record of prior turns."""

    def __init__(self, max_messages: int = None):
        """Initialize the history.

        Args:
            max_messages: Cap on stored messages (default: config.MAX_CHAT_MESSAGES)
        """
        self.max_messages = max_messages or config.MAX_CHAT_MESSAGES
        self._messages: deque = deque(maxlen=self.max_messages)
        self._lock = threading.Lock()

    def append(self, message: ConversationMessage) -> None:
        with self._lock:
            self._messages.append(message)

    def extend(self, messages: Iterable[ConversationMessage]) -> None:
        """Append several messages as one step (e.g. a question/answer pair)."""
        with self._lock:
            self._messages.extend(messages)
            size = len(self._messages)

        logger.debug("conversation_messages_added", history_size=size)

    def get_all(self) -> List[ConversationMessage]:
        """Copy of all messages, oldest first."""
        with self._lock:
            return list(self._messages)

    def recent(self, limit: int) -> List[ConversationMessage]:
        """The newest `limit` messages, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._messages)[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()
        logger.info("conversation_history_cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

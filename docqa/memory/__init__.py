"""Conversation memory."""
from docqa.memory.history import ConversationHistory

__all__ = ["ConversationHistory"]

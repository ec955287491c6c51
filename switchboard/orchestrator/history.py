"""Per-chat conversation history with in-order commits."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from switchboard.clients.base import ChatMessage, estimate_tokens

logger = logging.getLogger(__name__)


class ConversationHistory:
    """Conversation turns keyed by chat id.

    Every submitted request reserves a sequence number for its chat. Turns are
    committed in sequence order even when requests finish out of order: a
    commit for sequence n waits until every earlier sequence has either
    committed or been skipped.
    """

    def __init__(self, max_messages: int = 50) -> None:
        self.max_messages = max_messages
        self._messages: dict[str, list[ChatMessage]] = {}
        self._next_sequence: dict[str, int] = {}
        self._next_commit: dict[str, int] = {}
        self._pending: dict[str, dict[int, tuple[ChatMessage, ...]]] = {}

    def reserve(self, chat_id: str) -> int:
        sequence = self._next_sequence.get(chat_id, 0)
        self._next_sequence[chat_id] = sequence + 1
        return sequence

    def commit(self, chat_id: str, sequence: int, messages: Sequence[ChatMessage]) -> None:
        self._pending.setdefault(chat_id, {})[sequence] = tuple(messages)
        self._flush(chat_id)

    def skip(self, chat_id: str, sequence: int) -> None:
        """Release a sequence slot without adding turns (failed request)."""
        self._pending.setdefault(chat_id, {})[sequence] = ()
        self._flush(chat_id)

    def _flush(self, chat_id: str) -> None:
        pending = self._pending[chat_id]
        position = self._next_commit.get(chat_id, 0)
        while position in pending:
            turns = pending.pop(position)
            if turns:
                self._messages.setdefault(chat_id, []).extend(turns)
            position += 1
        self._next_commit[chat_id] = position
        if not pending:
            del self._pending[chat_id]

        messages = self._messages.get(chat_id)
        if messages and len(messages) > self.max_messages:
            del messages[: len(messages) - self.max_messages]

    def messages(self, chat_id: str) -> list[ChatMessage]:
        return list(self._messages.get(chat_id, ()))

    def context_for(
        self,
        chat_id: str,
        message: ChatMessage,
        context_limit_tokens: int | None = None,
        reserved_tokens: int = 0,
    ) -> list[ChatMessage]:
        """History plus the new message, oldest turns dropped to fit the limit.

        The new message is always kept, even when it alone exceeds the limit.
        """
        context = [*self.messages(chat_id), message]
        if not context_limit_tokens:
            return context

        budget = context_limit_tokens - reserved_tokens
        total = sum(estimate_tokens(m.content) for m in context)
        dropped = 0
        while total > budget and len(context) > 1:
            total -= estimate_tokens(context.pop(0).content)
            dropped += 1
        if dropped:
            logger.debug(f"Trimmed {dropped} message(s) from chat '{chat_id}' to fit context")
        return context

    def clear(self, chat_id: str) -> int:
        """Drop stored turns for a chat; returns how many were removed.

        Sequence bookkeeping is kept so requests still in flight commit in order.
        """
        return len(self._messages.pop(chat_id, []))

    def chat_ids(self) -> list[str]:
        return [chat_id for chat_id, messages in self._messages.items() if messages]

    def message_counts(self) -> dict[str, int]:
        return {chat_id: len(messages) for chat_id, messages in self._messages.items() if messages}

    @property
    def total_messages(self) -> int:
        return sum(len(messages) for messages in self._messages.values())

"""Per-session view of one conversation: history, live inserts, read state."""

from typing import List, Optional, Set

import structlog

from ..core.context import UserContext
from ..models.schemas import ChatMessage, MessageCreate
from .chat_service import ChatService
from .realtime import EventPump

logger = structlog.get_logger()


class ConversationSession:
    """Local message list kept in sync by pull and push.

    Messages from history, from the push stream and from our own sends are
    merged by id, so an insert echoed back by the stream after an
    optimistic append is not shown twice.
    """

    def __init__(self, chat: ChatService, ctx: UserContext, conversation_id: str):
        self.chat = chat
        self.ctx = ctx
        self.conversation_id = conversation_id
        self.messages: List[ChatMessage] = []
        self._ids: Set[str] = set()
        self._pump: Optional[EventPump] = None

    async def open(self) -> "ConversationSession":
        """Subscribe first, then load history, so nothing slips between."""
        if self._pump is None:
            self._pump = await self.chat.watch_messages(
                self.ctx, self.conversation_id, self._on_message
            )
        await self.refresh()
        return self

    async def refresh(self) -> List[ChatMessage]:
        history = await self.chat.get_messages(self.ctx, self.conversation_id)
        # Keep anything pushed while the query was in flight.
        pending = [m for m in self.messages if m.id not in {h.id for h in history}]
        self.messages = []
        self._ids = set()
        for message in sorted(history + pending, key=lambda m: m.created_at):
            self._append(message)
        return self.messages

    def _append(self, message: ChatMessage) -> bool:
        if message.id in self._ids:
            return False
        self._ids.add(message.id)
        self.messages.append(message)
        return True

    def _on_message(self, message: ChatMessage) -> None:
        if self._append(message):
            logger.debug("Message received", conversation_id=self.conversation_id, message_id=message.id)

    async def send(self, message: MessageCreate) -> ChatMessage:
        sent = await self.chat.send_message(self.ctx, self.conversation_id, message)
        self._append(sent)
        return sent

    async def mark_read(self) -> None:
        await self.chat.mark_as_read(self.ctx, self.conversation_id)

    @property
    def is_live(self) -> bool:
        return self._pump is not None and self._pump.running

    async def close(self) -> None:
        if self._pump is not None:
            await self._pump.close()
            self._pump = None

    async def __aenter__(self) -> "ConversationSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

"""
Chat Service - conversations, participants and messages.

Multi-write flows are short sagas with no transaction boundary:

- create conversation: the conversation insert must succeed; participant
  inserts are best effort, failures are logged and the conversation is
  kept.
- send message: the message insert must succeed; touching the parent
  conversation's ``updated_at`` is best effort.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from ..core.config import settings
from ..core.context import UserContext
from ..db.gateway import INSERT, DataGateway, Filter, Order, Subscription, eq, in_
from ..models.schemas import (
    ChatMessage,
    Conversation,
    ConversationCreate,
    ConversationType,
    MessageCreate,
    Participant,
    ParticipantAdd,
    Role,
)
from .error_handling import AuthenticationError, AuthorizationError, ErrorCategory, GatewayError, NotFoundError
from .realtime import EventPump, Handler

logger = structlog.get_logger()

CONVERSATIONS_COLLECTION = "conversations"
PARTICIPANTS_COLLECTION = "conversation_participants"
MESSAGES_COLLECTION = "messages"


def _require_user(ctx: UserContext, operation: str) -> None:
    if not ctx.is_authenticated:
        raise AuthenticationError(f"{operation} requires an authenticated user")


def _message_filters(ctx: UserContext, conversation_id: str) -> List[Filter]:
    filters = [eq("conversation_id", conversation_id)]
    if ctx.role == Role.CLIENT:
        filters.append(eq("is_internal", False))
    return filters


def _client_visible(ctx: UserContext, row: Dict[str, Any]) -> bool:
    return ctx.role != Role.CLIENT or bool(row.get("is_client_visible"))


class ChatService:
    """Conversation and message operations over the gateway."""

    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    # -- conversations ----------------------------------------------------

    async def list_conversations(self, ctx: UserContext) -> List[Conversation]:
        """Conversations the caller participates in, most recently active first."""
        _require_user(ctx, "Listing conversations")
        memberships = await self.gateway.select(
            PARTICIPANTS_COLLECTION, [eq("user_id", ctx.user_id)]
        )
        conversation_ids = list(dict.fromkeys(m["conversation_id"] for m in memberships))
        if not conversation_ids:
            return []
        rows = await self.gateway.select(
            CONVERSATIONS_COLLECTION,
            [in_("id", conversation_ids)],
            order=Order("updated_at", descending=True),
        )
        return await self._summaries(ctx, rows)

    async def list_case_conversations(self, ctx: UserContext, case_id: str) -> List[Conversation]:
        """Case-scoped conversations, most recently active first."""
        rows = await self.gateway.select(
            CONVERSATIONS_COLLECTION,
            [eq("type", ConversationType.CASE.value), eq("case_id", case_id)],
            order=Order("updated_at", descending=True),
        )
        return await self._summaries(ctx, rows)

    async def get_conversation(self, ctx: UserContext, conversation_id: str) -> Conversation:
        rows = await self.gateway.select(
            CONVERSATIONS_COLLECTION, [eq("id", conversation_id)], limit=1
        )
        if not rows:
            raise NotFoundError(f"Conversation {conversation_id} not found", "Conversation not found")
        if not _client_visible(ctx, rows[0]):
            raise AuthorizationError(
                f"{ctx.user_id} may not view conversation {conversation_id}",
                "You don't have permission to view this conversation.",
            )
        summaries = await self._summaries(ctx, rows)
        return summaries[0]

    async def _summaries(self, ctx: UserContext, rows: List[Dict[str, Any]]) -> List[Conversation]:
        rows = [row for row in rows if _client_visible(ctx, row)]
        if not rows:
            return []

        participant_rows = await self.gateway.select(
            PARTICIPANTS_COLLECTION,
            [in_("conversation_id", [row["id"] for row in rows])],
            order=Order("joined_at"),
        )
        roster: Dict[str, List[Participant]] = {}
        for p in participant_rows:
            roster.setdefault(p["conversation_id"], []).append(Participant(**p))

        conversations = []
        for row in rows:
            latest = await self.gateway.select(
                MESSAGES_COLLECTION,
                _message_filters(ctx, row["id"]),
                order=Order("created_at", descending=True),
                limit=1,
            )
            conversations.append(
                Conversation.from_row(
                    row,
                    participants=roster.get(row["id"], []),
                    last_message=ChatMessage.from_row(latest[0]) if latest else None,
                )
            )
        return conversations

    async def create_conversation(self, ctx: UserContext, request: ConversationCreate) -> Conversation:
        """Create a conversation and add the creator plus invitees once each."""
        _require_user(ctx, "Creating a conversation")
        row = await self.gateway.insert(CONVERSATIONS_COLLECTION, {
            "title": request.title,
            "type": request.type.value,
            "case_id": request.case_id,
            "is_client_visible": request.is_client_visible,
            "created_by": ctx.user_id,
        })
        conversation_id = row["id"]

        roster = [{
            "user_id": ctx.user_id,
            "user_name": ctx.sender_name,
            "user_role": ctx.role.value,
        }]
        seen = {ctx.user_id}
        for invitee in request.participants:
            if invitee.user_id in seen:
                continue
            seen.add(invitee.user_id)
            roster.append({
                "user_id": invitee.user_id,
                "user_name": invitee.user_name or invitee.user_id,
                "user_role": invitee.user_role.value,
            })

        participants = []
        for entry in roster:
            try:
                stored = await self.gateway.insert(
                    PARTICIPANTS_COLLECTION, {"conversation_id": conversation_id, **entry}
                )
            except GatewayError as e:
                logger.warning(
                    "Failed to add participant",
                    conversation_id=conversation_id,
                    user_id=entry["user_id"],
                    error=e.message,
                    category=ErrorCategory.PARTIAL_FAILURE.value,
                )
                continue
            participants.append(Participant(**stored))

        logger.info(
            "Conversation created",
            conversation_id=conversation_id,
            type=request.type.value,
            participants=len(participants),
        )
        return Conversation.from_row(row, participants=participants)

    async def add_participant(
        self, ctx: UserContext, conversation_id: str, request: ParticipantAdd
    ) -> Participant:
        """Insert a participant row; duplicates are tolerated."""
        _require_user(ctx, "Adding a participant")
        stored = await self.gateway.insert(PARTICIPANTS_COLLECTION, {
            "conversation_id": conversation_id,
            "user_id": request.user_id,
            "user_name": request.user_name,
            "user_role": request.user_role.value,
        })
        return Participant(**stored)

    async def mark_as_read(self, ctx: UserContext, conversation_id: str) -> None:
        """Stamp the caller's ``last_read_at``; silently a no-op for non-members."""
        if not ctx.is_authenticated:
            return
        filters = [eq("conversation_id", conversation_id), eq("user_id", ctx.user_id)]
        membership = await self.gateway.select(PARTICIPANTS_COLLECTION, filters, limit=1)
        if not membership:
            return
        await self.gateway.update(
            PARTICIPANTS_COLLECTION, filters, {"last_read_at": datetime.now(timezone.utc)}
        )

    # -- messages ---------------------------------------------------------

    async def get_messages(
        self, ctx: UserContext, conversation_id: str, limit: Optional[int] = None
    ) -> List[ChatMessage]:
        """The most recent ``limit`` messages, oldest first."""
        rows = await self.gateway.select(
            MESSAGES_COLLECTION,
            _message_filters(ctx, conversation_id),
            order=Order("created_at", descending=True),
            limit=limit or settings.messages_default_limit,
        )
        return [ChatMessage.from_row(row) for row in reversed(rows)]

    async def send_message(
        self, ctx: UserContext, conversation_id: str, message: MessageCreate
    ) -> ChatMessage:
        """Insert a message, then touch the conversation."""
        _require_user(ctx, "Sending a message")
        if message.is_internal and ctx.role == Role.CLIENT:
            raise AuthorizationError(
                f"Client {ctx.user_id} attempted an internal message",
                "Clients cannot send internal messages.",
            )

        row = await self.gateway.insert(MESSAGES_COLLECTION, {
            "conversation_id": conversation_id,
            "sender_id": ctx.user_id,
            "sender_name": ctx.sender_name,
            "content": message.content,
            "message_type": message.message_type.value,
            "is_internal": message.is_internal,
            "attachment_url": message.attachment_url,
            "attachment_name": message.attachment_name,
        })
        sent = ChatMessage.from_row(row)

        touched_at = max(datetime.now(timezone.utc), sent.created_at)
        try:
            await self.gateway.update(
                CONVERSATIONS_COLLECTION, [eq("id", conversation_id)], {"updated_at": touched_at}
            )
        except GatewayError as e:
            logger.warning(
                "Failed to update conversation timestamp",
                conversation_id=conversation_id,
                error=e.message,
                category=ErrorCategory.PARTIAL_FAILURE.value,
            )
        return sent

    # -- realtime ---------------------------------------------------------

    async def subscribe_to_messages(self, ctx: UserContext, conversation_id: str) -> Subscription:
        """Stream of message inserts for one conversation."""
        return await self.gateway.subscribe(
            MESSAGES_COLLECTION, _message_filters(ctx, conversation_id), events=(INSERT,)
        )

    async def subscribe_to_conversations(self) -> Subscription:
        """Stream of every change on the conversations collection."""
        return await self.gateway.subscribe(CONVERSATIONS_COLLECTION)

    async def watch_messages(
        self, ctx: UserContext, conversation_id: str, handler: Handler
    ) -> EventPump:
        """Call ``handler`` with each new ``ChatMessage`` until the pump is closed."""
        subscription = await self.subscribe_to_messages(ctx, conversation_id)
        return EventPump(
            subscription, handler, transform=lambda event: ChatMessage.from_row(event.row)
        ).start()

    async def watch_conversations(self, handler: Handler) -> EventPump:
        """Call ``handler`` with each raw conversation ``ChangeEvent``."""
        subscription = await self.subscribe_to_conversations()
        return EventPump(subscription, handler).start()

"""Data models for DebtDesk."""

from .schemas import (
    Action,
    ActionCreate,
    ActionPriority,
    Attachment,
    Case,
    CaseCreateRequest,
    CaseDetail,
    CaseListPage,
    CaseListQuery,
    CaseStatus,
    ChatMessage,
    Conversation,
    ConversationCreate,
    ConversationType,
    MessageCreate,
    MessageType,
    Notice,
    Participant,
    Role,
    SortKey,
    SortOrder,
)

__all__ = [
    "Action",
    "ActionCreate",
    "ActionPriority",
    "Attachment",
    "Case",
    "CaseCreateRequest",
    "CaseDetail",
    "CaseListPage",
    "CaseListQuery",
    "CaseStatus",
    "ChatMessage",
    "Conversation",
    "ConversationCreate",
    "ConversationType",
    "MessageCreate",
    "MessageType",
    "Notice",
    "Participant",
    "Role",
    "SortKey",
    "SortOrder",
]

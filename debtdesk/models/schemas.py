"""Pydantic schemas for data validation and serialization."""

from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, model_validator
from enum import Enum


class Role(str, Enum):
    """User roles; determine case visibility scope."""
    CLIENT = "CLIENT"
    AGENT = "AGENT"
    ADMIN = "ADMIN"
    DPO = "DPO"


class CaseStatus(str, Enum):
    """Case lifecycle statuses."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    AWAITING_APPROVAL = "awaiting_approval"
    LEGAL_STAGE = "legal_stage"
    CLOSED = "closed"


# Linear progression used by the progress bar; not enforced on writes.
CASE_STATUS_PROGRESSION: List[str] = [status.value for status in CaseStatus]


class SortKey(str, Enum):
    """Case list sort keys."""
    CREATED_AT = "created_at"
    AMOUNT = "amount"
    UPDATED_AT = "updated_at"


class SortOrder(str, Enum):
    """Sort direction."""
    ASC = "asc"
    DESC = "desc"


class ConversationType(str, Enum):
    """Conversation kinds."""
    CASE = "case"
    DIRECT = "direct"
    GROUP = "group"


class MessageType(str, Enum):
    """Chat message kinds."""
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


class ActionPriority(str, Enum):
    """Action priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------

class DebtorAddress(BaseModel):
    """Structured debtor address."""
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def format(self) -> str:
        """Single-line address, skipping blank parts."""
        parts = [self.street, self.city, self.postal_code, self.country]
        return ", ".join(p for p in parts if p) or "Incomplete address"


class Debtor(BaseModel):
    """Debtor contact details."""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[DebtorAddress] = None


class Case(BaseModel):
    """Debt collection case."""
    id: str
    reference: str
    debtor: Debtor
    amount: Decimal = Field(ge=0)
    currency: str = "EUR"
    fees: Optional[Decimal] = Field(None, ge=0)
    interest: Optional[Decimal] = Field(None, ge=0)
    penalties: Optional[Decimal] = Field(None, ge=0)
    vat: Optional[Decimal] = Field(None, ge=0)
    status: str = CaseStatus.NEW.value
    client_id: str
    assigned_agent_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "c0a8012e-0000-4000-8000-000000000001",
                "reference": "INV-2024-0042",
                "debtor": {"name": "Acme GmbH", "email": "billing@acme.example"},
                "amount": "1250.00",
                "currency": "EUR",
                "status": "in_progress",
                "client_id": "client-7",
                "assigned_agent_id": "agent-3",
                "created_at": "2024-03-01T09:00:00+00:00",
                "updated_at": "2024-03-05T14:30:00+00:00",
            }
        }
    }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Case":
        """Build a case from a ``case_intakes`` row."""
        address = row.get("debtor_address")
        return cls(
            id=row["id"],
            reference=row["reference"],
            debtor=Debtor(
                name=row["debtor_name"],
                email=row.get("debtor_email"),
                phone=row.get("debtor_phone"),
                address=DebtorAddress(**address) if isinstance(address, dict) else None,
            ),
            amount=row.get("total_amount") or 0,
            currency=row.get("currency_code") or "EUR",
            fees=row.get("total_fees"),
            interest=row.get("total_interest"),
            penalties=row.get("total_penalties"),
            vat=row.get("total_vat"),
            status=row.get("status") or CaseStatus.NEW.value,
            client_id=row["client_id"],
            assigned_agent_id=row.get("assigned_agent_id"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class CaseCreateRequest(BaseModel):
    """Case creation request produced by the wizard."""
    debtor: Debtor
    amount: Decimal = Field(ge=0)
    currency: str = "EUR"
    description: str = ""
    reference: str = Field(min_length=1)
    original_creditor: str = ""
    client_id: Optional[str] = None

    def to_row(self, created_by: str, client_id: str) -> Dict[str, Any]:
        """Convert to a ``case_intakes`` insert row."""
        address = self.debtor.address
        notes = self.description
        if self.original_creditor:
            notes = f"{notes}\n\nOriginal creditor: {self.original_creditor}".strip()
        return {
            "reference": self.reference,
            "debtor_name": self.debtor.name,
            "debtor_email": self.debtor.email,
            "debtor_phone": self.debtor.phone or None,
            "debtor_address": address.model_dump() if address else None,
            "debtor_country": address.country if address else None,
            "total_amount": float(self.amount),
            "currency_code": self.currency,
            "notes": notes or None,
            "status": CaseStatus.NEW.value,
            "client_id": client_id,
            "created_by": created_by,
        }


class CaseListQuery(BaseModel):
    """Case list view parameters."""
    search: str = ""
    status: str = "all"
    sort_by: SortKey = SortKey.CREATED_AT
    order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)


class CaseListPage(BaseModel):
    """One rendered page of the case list."""
    cases: List[Case]
    total_count: int
    page: int
    page_size: int
    total_pages: int


class StatusStep(BaseModel):
    """One step of the status progress bar."""
    status: str
    label: str
    active: bool
    passed: bool


class CaseProgress(BaseModel):
    """Progress bar state for a case."""
    status: str
    percent: float
    steps: List[StatusStep]


class CaseView(BaseModel):
    """Case with its progress bar."""
    case: Case
    progress: CaseProgress


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class ActionMetadata(BaseModel):
    """Optional action details; only non-default values are stored."""
    priority: Optional[ActionPriority] = None
    outcome: Optional[str] = None
    next_action: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0)


class Action(BaseModel):
    """Append-only audit entry on a case."""
    id: str
    case_id: str
    agent_id: str
    action_type: str
    description: str
    status: str
    created_at: datetime
    metadata: Optional[ActionMetadata] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Action":
        metadata = row.get("metadata")
        return cls(
            id=row["id"],
            case_id=row["case_id"],
            agent_id=row["agent_id"],
            action_type=row["action_type"],
            description=row["description"],
            status=row.get("status") or "completed",
            created_at=row["created_at"],
            metadata=ActionMetadata(**metadata) if isinstance(metadata, dict) else None,
        )


class ActionCreate(BaseModel):
    """Action logging form."""
    action_type: str = ""
    description: str = ""
    priority: ActionPriority = ActionPriority.MEDIUM
    outcome: str = ""
    next_action: str = ""
    duration_minutes: Optional[int] = None


class ActionDisplay(BaseModel):
    """Derived presentation of an action."""
    label: str
    icon: str
    category: str
    color: str
    priority: Optional[str] = None
    priority_color: Optional[str] = None
    duration_label: Optional[str] = None


class ActionEntry(BaseModel):
    """Action plus its display decoration."""
    action: Action
    display: ActionDisplay


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

class Participant(BaseModel):
    """Conversation participant with read state."""
    id: str
    conversation_id: str
    user_id: str
    user_name: str
    user_role: str
    joined_at: datetime
    last_read_at: Optional[datetime] = None


class ChatMessage(BaseModel):
    """Chat message."""
    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    content: str
    message_type: str = MessageType.TEXT.value
    is_internal: bool = False
    attachment_url: Optional[str] = None
    attachment_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatMessage":
        return cls(**{k: v for k, v in row.items() if k in cls.model_fields})


class Conversation(BaseModel):
    """Conversation summary with roster and last message."""
    id: str
    title: Optional[str] = None
    type: str
    case_id: Optional[str] = None
    is_client_visible: bool = False
    created_by: str
    created_at: datetime
    updated_at: datetime
    participants: List[Participant] = Field(default_factory=list)
    last_message: Optional[ChatMessage] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], **extra: Any) -> "Conversation":
        fields = {k: v for k, v in row.items() if k in cls.model_fields}
        fields.update(extra)
        return cls(**fields)

    def unique_participants(self) -> List[Participant]:
        """Participants deduplicated by user id, first row wins."""
        seen = set()
        unique = []
        for participant in self.participants:
            if participant.user_id in seen:
                continue
            seen.add(participant.user_id)
            unique.append(participant)
        return unique


class ParticipantRef(BaseModel):
    """Invitee for a new conversation."""
    user_id: str
    user_name: Optional[str] = None
    user_role: Role = Role.AGENT


class ConversationCreate(BaseModel):
    """Start-discussion request."""
    title: Optional[str] = None
    type: ConversationType = ConversationType.CASE
    case_id: Optional[str] = None
    is_client_visible: bool = False
    participants: List[ParticipantRef] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_case_scope(self) -> "ConversationCreate":
        """Case id is present iff the conversation is case-scoped."""
        if self.type == ConversationType.CASE and not self.case_id:
            raise ValueError("case conversations require a case_id")
        if self.type != ConversationType.CASE and self.case_id:
            raise ValueError("only case conversations may carry a case_id")
        return self


class MessageCreate(BaseModel):
    """New chat message."""
    content: str = Field(min_length=1)
    message_type: MessageType = MessageType.TEXT
    is_internal: bool = False
    attachment_url: Optional[str] = None
    attachment_name: Optional[str] = None


class ParticipantAdd(BaseModel):
    """Add-participant request."""
    user_id: str
    user_name: str
    user_role: Role


# ---------------------------------------------------------------------------
# Wizard / documents
# ---------------------------------------------------------------------------

class Attachment(BaseModel):
    """File selected for upload."""
    filename: str
    content_type: str
    size: int = Field(ge=0)
    content: bytes = b""


class Notice(BaseModel):
    """User-visible notice."""
    level: str = "info"  # info | error
    title: str
    description: str = ""


class CaseDetail(BaseModel):
    """Everything the case detail view renders."""
    case: Case
    progress: CaseProgress
    actions: List[ActionEntry] = Field(default_factory=list)
    conversations: List[Conversation] = Field(default_factory=list)
    can_log_actions: bool = False

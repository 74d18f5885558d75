"""
Action audit log.

Agents record every unit of work on a case as an append-only action. Each
action type belongs to one of four categories; the display label, icon and
colour are derived from the type, never stored.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

import structlog

from ..core.context import UserContext
from ..db.gateway import DataGateway, Order, eq
from ..models.schemas import (
    Action,
    ActionCreate,
    ActionDisplay,
    ActionEntry,
    ActionPriority,
    Case,
    Role,
)
from ..utils.text import humanize_tag
from .error_handling import AuthenticationError, AuthorizationError, ValidationError

logger = structlog.get_logger()

ACTIONS_COLLECTION = "actions"


class ActionCategory(str, Enum):
    """Action categories."""
    COMMUNICATION = "Communication"
    CASE_MANAGEMENT = "Case Management"
    NEGOTIATION = "Negotiation"
    LEGAL = "Legal"


CATEGORY_COLORS: Dict[str, str] = {
    ActionCategory.COMMUNICATION.value: "blue",
    ActionCategory.CASE_MANAGEMENT.value: "purple",
    ActionCategory.NEGOTIATION.value: "green",
    ActionCategory.LEGAL.value: "red",
}

PRIORITY_COLORS: Dict[ActionPriority, str] = {
    ActionPriority.LOW: "gray",
    ActionPriority.MEDIUM: "yellow",
    ActionPriority.HIGH: "orange",
    ActionPriority.URGENT: "red",
}


@dataclass(frozen=True)
class KnownActionType:
    """A recognised action type."""
    value: str
    label: str
    icon: str
    category: ActionCategory

    @property
    def category_label(self) -> str:
        return self.category.value

    @property
    def color(self) -> str:
        return CATEGORY_COLORS[self.category.value]


@dataclass(frozen=True)
class UnknownActionType:
    """An action type outside the taxonomy, kept verbatim."""
    value: str

    @property
    def label(self) -> str:
        return humanize_tag(self.value)

    icon = "clock"
    category_label = "Other"
    color = "slate"


ActionTypeInfo = Union[KnownActionType, UnknownActionType]


def _known(value: str, label: str, icon: str, category: ActionCategory) -> KnownActionType:
    return KnownActionType(value, label, icon, category)


ACTION_TYPES: Dict[str, KnownActionType] = {
    t.value: t
    for t in [
        # Communication
        _known("phone_call", "Phone Call", "phone", ActionCategory.COMMUNICATION),
        _known("email_sent", "Email Sent", "mail", ActionCategory.COMMUNICATION),
        _known("letter_sent", "Letter Sent", "file-text", ActionCategory.COMMUNICATION),
        _known("meeting", "Meeting", "user", ActionCategory.COMMUNICATION),
        # Case Management
        _known("document_review", "Document Review", "file-text", ActionCategory.CASE_MANAGEMENT),
        _known("case_analysis", "Case Analysis", "file-text", ActionCategory.CASE_MANAGEMENT),
        _known("status_update", "Status Update", "clock", ActionCategory.CASE_MANAGEMENT),
        _known("client_communication", "Client Communication", "message-square", ActionCategory.CASE_MANAGEMENT),
        # Negotiation & Settlement
        _known("negotiation", "Negotiation Session", "hand-coins", ActionCategory.NEGOTIATION),
        _known("settlement_offer", "Settlement Offer", "hand-coins", ActionCategory.NEGOTIATION),
        _known("payment_plan", "Payment Plan Setup", "clock", ActionCategory.NEGOTIATION),
        _known("discount_approved", "Discount Approved", "hand-coins", ActionCategory.NEGOTIATION),
        # Legal
        _known("legal_notice", "Legal Notice Sent", "alert-triangle", ActionCategory.LEGAL),
        _known("court_filing", "Court Filing", "scale", ActionCategory.LEGAL),
        _known("legal_consultation", "Legal Consultation", "scale", ActionCategory.LEGAL),
        _known("enforcement_action", "Enforcement Action", "alert-triangle", ActionCategory.LEGAL),
    ]
}


def resolve_action_type(value: str) -> ActionTypeInfo:
    return ACTION_TYPES.get(value) or UnknownActionType(value)


def taxonomy() -> Dict[str, List[Dict[str, str]]]:
    """Action types grouped by category, in display order."""
    grouped: Dict[str, List[Dict[str, str]]] = {c.value: [] for c in ActionCategory}
    for info in ACTION_TYPES.values():
        grouped[info.category_label].append(
            {"value": info.value, "label": info.label, "icon": info.icon}
        )
    return grouped


def describe_action(action: Action) -> ActionDisplay:
    """Derive label, icon, category and badges for an action."""
    info = resolve_action_type(action.action_type)
    metadata = action.metadata
    priority = metadata.priority if metadata else None
    duration = metadata.duration_minutes if metadata else None
    return ActionDisplay(
        label=info.label,
        icon=info.icon,
        category=info.category_label,
        color=info.color,
        priority=priority.value if priority else None,
        priority_color=PRIORITY_COLORS[priority] if priority else None,
        duration_label=f"{duration}min" if duration else None,
    )


def build_metadata(form: ActionCreate) -> Optional[Dict[str, object]]:
    """Metadata bag holding only the values that differ from the defaults."""
    metadata: Dict[str, object] = {}
    if form.priority != ActionPriority.MEDIUM:
        metadata["priority"] = form.priority.value
    if form.outcome.strip():
        metadata["outcome"] = form.outcome.strip()
    if form.next_action.strip():
        metadata["next_action"] = form.next_action.strip()
    if form.duration_minutes is not None:
        metadata["duration_minutes"] = form.duration_minutes
    return metadata or None


def validate_action(form: ActionCreate) -> None:
    if not form.action_type or not form.description.strip():
        raise ValidationError("Please fill in all required fields")
    if form.duration_minutes is not None and (
        isinstance(form.duration_minutes, bool) or form.duration_minutes <= 0
    ):
        raise ValidationError("Duration must be a positive number of minutes")


class ActionService:
    """Append and list case actions."""

    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    async def log_action(self, ctx: UserContext, case: Case, form: ActionCreate) -> Action:
        """Append one action; only the case's assigned agent may log."""
        validate_action(form)
        if not ctx.is_authenticated:
            raise AuthenticationError("Logging an action requires an authenticated user")
        if ctx.role != Role.AGENT or case.assigned_agent_id != ctx.user_id:
            raise AuthorizationError(
                f"{ctx.user_id} is not the assigned agent of case {case.id}",
                "Only the assigned agent can log actions on this case.",
            )

        row = {
            "case_id": case.id,
            "agent_id": ctx.user_id,
            "action_type": form.action_type,
            "description": form.description.strip(),
            "status": "completed",
        }
        metadata = build_metadata(form)
        if metadata:
            row["metadata"] = metadata

        stored = await self.gateway.insert(ACTIONS_COLLECTION, row)
        logger.info("Action logged", case_id=case.id, action_type=form.action_type)
        return Action.from_row(stored)

    async def list_actions(self, case_id: str) -> List[Action]:
        """All actions for a case, newest first."""
        rows = await self.gateway.select(
            ACTIONS_COLLECTION,
            [eq("case_id", case_id)],
            order=Order("created_at", descending=True),
        )
        return [Action.from_row(row) for row in rows]

    async def list_entries(self, case_id: str) -> List[ActionEntry]:
        return [
            ActionEntry(action=action, display=describe_action(action))
            for action in await self.list_actions(case_id)
        ]

import pytest

from conftest import case_row
from debtdesk.models.schemas import Action, ActionCreate, ActionPriority, Case
from debtdesk.services.action_service import (
    ACTIONS_COLLECTION,
    ActionService,
    build_metadata,
    describe_action,
    resolve_action_type,
    taxonomy,
)
from debtdesk.services.error_handling import (
    AuthenticationError,
    AuthorizationError,
    ValidationError,
)
from debtdesk.core.context import ANONYMOUS
from debtdesk.utils.text import humanize_tag


@pytest.fixture
def case():
    return Case.from_row(case_row(1, agent_id="agent-1"))


@pytest.fixture
def service(gateway):
    return ActionService(gateway)


@pytest.mark.parametrize("priority", list(ActionPriority))
def test_priority_stored_only_when_not_medium(priority):
    metadata = build_metadata(ActionCreate(action_type="phone_call", description="x", priority=priority)) or {}
    assert ("priority" in metadata) == (priority != ActionPriority.MEDIUM)


@pytest.mark.parametrize("duration", [None, 1, 45])
def test_duration_stored_only_when_given(duration):
    metadata = build_metadata(ActionCreate(action_type="meeting", description="x", duration_minutes=duration)) or {}
    assert ("duration_minutes" in metadata) == (duration is not None)


def test_defaults_produce_no_metadata():
    assert build_metadata(ActionCreate(action_type="meeting", description="x", outcome="  ")) is None


@pytest.mark.asyncio
async def test_log_action_appends_one_completed_row(gateway, service, agent, case):
    form = ActionCreate(
        action_type="phone_call",
        description="  Called debtor, promised payment  ",
        priority=ActionPriority.HIGH,
        outcome=" Promise to pay ",
        next_action="",
        duration_minutes=15,
    )

    action = await service.log_action(agent, case, form)

    assert [(op, coll) for op, coll, _ in gateway.writes] == [("insert", ACTIONS_COLLECTION)]
    stored = gateway.writes[0][2]
    assert stored["status"] == "completed"
    assert stored["description"] == "Called debtor, promised payment"
    assert stored["agent_id"] == "agent-1"
    assert stored["metadata"] == {"priority": "high", "outcome": "Promise to pay", "duration_minutes": 15}
    assert action.metadata.priority == ActionPriority.HIGH


@pytest.mark.asyncio
async def test_log_action_without_optional_fields_has_no_metadata(gateway, service, agent, case):
    await service.log_action(agent, case, ActionCreate(action_type="email_sent", description="Reminder"))
    assert "metadata" not in gateway.writes[0][2]


@pytest.mark.asyncio
@pytest.mark.parametrize("form", [
    ActionCreate(action_type="", description="Something"),
    ActionCreate(action_type="meeting", description="   "),
    ActionCreate(action_type="meeting", description="ok", duration_minutes=0),
    ActionCreate(action_type="meeting", description="ok", duration_minutes=-5),
])
async def test_invalid_forms_are_rejected_before_writing(gateway, service, agent, case, form):
    with pytest.raises(ValidationError):
        await service.log_action(agent, case, form)
    assert gateway.writes == []


@pytest.mark.asyncio
async def test_only_assigned_agent_may_log(gateway, service, other_agent, admin, case):
    form = ActionCreate(action_type="meeting", description="Visit")
    with pytest.raises(AuthorizationError):
        await service.log_action(other_agent, case, form)
    with pytest.raises(AuthorizationError):
        await service.log_action(admin, case, form)
    with pytest.raises(AuthenticationError):
        await service.log_action(ANONYMOUS, case, form)
    assert gateway.writes == []


@pytest.mark.asyncio
async def test_unknown_action_type_is_accepted(service, agent, case):
    action = await service.log_action(agent, case, ActionCreate(action_type="site_visit", description="Drove by"))
    display = describe_action(action)
    assert display.category == "Other"
    assert display.label == "Site Visit"
    assert display.color == "slate"


@pytest.mark.asyncio
async def test_list_actions_newest_first(service, agent, case):
    for kind in ["phone_call", "email_sent", "court_filing"]:
        await service.log_action(agent, case, ActionCreate(action_type=kind, description=kind))

    actions = await service.list_actions(case.id)

    assert [a.action_type for a in actions] == ["court_filing", "email_sent", "phone_call"]
    entries = await service.list_entries(case.id)
    assert entries[0].display.label == "Court Filing"
    assert entries[0].display.category == "Legal"


def test_known_types_resolve_through_taxonomy():
    info = resolve_action_type("negotiation")
    assert info.label == "Negotiation Session"
    assert info.icon == "hand-coins"
    assert info.category_label == "Negotiation"
    assert info.color == "green"


def test_taxonomy_groups_four_categories():
    groups = taxonomy()
    assert list(groups) == ["Communication", "Case Management", "Negotiation", "Legal"]
    assert all(len(types) == 4 for types in groups.values())


def test_humanize_replaces_only_first_underscore():
    assert humanize_tag("legal_notice_sent") == "Legal Notice_sent"
    assert humanize_tag("site_visit") == "Site Visit"
    assert humanize_tag("meeting") == "Meeting"


def test_display_badges():
    action = Action.from_row({
        "id": "a1",
        "case_id": "case-1",
        "agent_id": "agent-1",
        "action_type": "payment_plan",
        "description": "Agreed on 6 instalments",
        "status": "completed",
        "created_at": "2024-03-02T10:00:00+00:00",
        "metadata": {"priority": "urgent", "duration_minutes": 30},
    })
    display = describe_action(action)
    assert display.priority_color == "red"
    assert display.duration_label == "30min"
    assert display.icon == "clock"

import pytest

from conftest import case_row
from debtdesk.core.context import UserContext
from debtdesk.models.schemas import Case, CaseListQuery, Role, SortKey, SortOrder
from debtdesk.services.case_query import (
    CASES_COLLECTION,
    CaseQueryService,
    can_view_case,
    filter_status,
    paginate,
    query_cases,
    search_cases,
    sort_cases,
    total_pages,
)


def make_cases(rows):
    return [Case.from_row(row) for row in rows]


@pytest.fixture
def mixed_cases():
    return make_cases([
        case_row(1, 500, client_id="client-1", agent_id="agent-1", status="new", name="Acme GmbH"),
        case_row(2, 250, client_id="client-1", agent_id="agent-2", status="in_progress", email="billing@acme.example"),
        case_row(3, 900, client_id="client-2", agent_id="agent-1", status="closed", reference="ACME-77"),
        case_row(4, 120, client_id="client-2", agent_id=None, status="new", name="Globex"),
        case_row(5, 750, client_id="client-3", agent_id="agent-2", status="legal_stage"),
    ])


def ids(cases):
    return [c.id for c in cases]


def test_client_sees_only_own_client_cases(mixed_cases, client_user):
    page = query_cases(mixed_cases, client_user, CaseListQuery())
    assert sorted(ids(page.cases)) == ["case-1", "case-2"]


def test_agent_sees_only_assigned_cases(mixed_cases, agent):
    page = query_cases(mixed_cases, agent, CaseListQuery())
    assert sorted(ids(page.cases)) == ["case-1", "case-3"]


@pytest.mark.parametrize("role", [Role.ADMIN, Role.DPO])
def test_admin_and_dpo_see_everything(mixed_cases, role):
    ctx = UserContext(user_id="staff-1", role=role)
    assert query_cases(mixed_cases, ctx, CaseListQuery()).total_count == 5


def test_client_without_client_id_sees_nothing(mixed_cases):
    ctx = UserContext(user_id="user-x", role=Role.CLIENT)
    page = query_cases(mixed_cases, ctx, CaseListQuery())
    assert page.cases == []
    assert page.total_pages == 1


def test_unassigned_case_is_invisible_to_agents(mixed_cases, agent):
    unassigned = next(c for c in mixed_cases if c.id == "case-4")
    assert not can_view_case(agent, unassigned)


def test_search_is_case_insensitive_substring(mixed_cases, admin):
    page = query_cases(mixed_cases, admin, CaseListQuery(search="aCmE"))
    assert sorted(ids(page.cases)) == ["case-1", "case-2", "case-3"]
    for case in page.cases:
        haystack = [case.debtor.name.lower(), (case.debtor.email or "").lower(), case.reference.lower()]
        assert any("acme" in field for field in haystack)


def test_search_does_not_match_other_fields(mixed_cases):
    assert search_cases(mixed_cases, "client-2") == []


def test_status_filter(mixed_cases, admin):
    page = query_cases(mixed_cases, admin, CaseListQuery(status="new"))
    assert sorted(ids(page.cases)) == ["case-1", "case-4"]


def test_independent_filters_commute(mixed_cases):
    searched_first = filter_status(search_cases(mixed_cases, "acme"), "new")
    status_first = search_cases(filter_status(mixed_cases, "new"), "acme")
    assert ids(searched_first) == ids(status_first) == ["case-1"]


def test_amount_sort_is_a_mirror_without_ties(mixed_cases):
    ascending = sort_cases(mixed_cases, SortKey.AMOUNT, SortOrder.ASC)
    descending = sort_cases(mixed_cases, SortKey.AMOUNT, SortOrder.DESC)
    assert ids(descending) == list(reversed(ids(ascending)))
    assert [c.amount for c in ascending] == sorted(c.amount for c in mixed_cases)


def test_ties_keep_input_order_in_both_directions():
    cases = make_cases([
        case_row(1, 300),
        case_row(2, 100),
        case_row(3, 300),
        case_row(4, 100),
    ])
    ascending = sort_cases(cases, SortKey.AMOUNT, SortOrder.ASC)
    descending = sort_cases(cases, SortKey.AMOUNT, SortOrder.DESC)
    assert ids(ascending) == ["case-2", "case-4", "case-1", "case-3"]
    assert ids(descending) == ["case-1", "case-3", "case-2", "case-4"]


def test_sort_by_created_and_updated_at(mixed_cases):
    assert ids(sort_cases(mixed_cases, SortKey.CREATED_AT, SortOrder.DESC))[0] == "case-5"
    assert ids(sort_cases(mixed_cases, SortKey.UPDATED_AT, SortOrder.ASC))[0] == "case-1"


@pytest.mark.parametrize("page_size", [1, 2, 3, 4, 10])
def test_pages_reconstruct_the_full_ordering(page_size):
    cases = make_cases([case_row(i, amount=(i * 37) % 11) for i in range(1, 24)])
    ordered = sort_cases(cases, SortKey.AMOUNT, SortOrder.DESC)
    pages = total_pages(len(ordered), page_size)
    rebuilt = []
    for page in range(1, pages + 1):
        rebuilt.extend(paginate(ordered, page, page_size))
    assert ids(rebuilt) == ids(ordered)
    assert len(set(ids(rebuilt))) == len(cases)


def test_twelve_cases_sorted_by_amount_descending(admin):
    amounts = [120, 990, 45, 300, 780, 15, 660, 510, 230, 870, 60, 400]
    cases = make_cases([case_row(i, amount) for i, amount in enumerate(amounts, start=1)])
    query = CaseListQuery(sort_by=SortKey.AMOUNT, order=SortOrder.DESC)

    first = query_cases(cases, admin, query, page_size=10)
    second = query_cases(cases, admin, query.model_copy(update={"page": 2}), page_size=10)

    expected = sorted(amounts, reverse=True)
    assert [int(c.amount) for c in first.cases] == expected[:10]
    assert [int(c.amount) for c in second.cases] == expected[10:]
    assert first.total_pages == second.total_pages == 2
    assert first.total_count == 12


def test_out_of_range_page_clamps_to_last(admin):
    cases = make_cases([case_row(i) for i in range(1, 13)])
    page = query_cases(cases, admin, CaseListQuery(page=7), page_size=10)
    assert page.page == 2
    assert len(page.cases) == 2


@pytest.mark.asyncio
async def test_service_reads_rows_from_gateway(gateway, agent):
    gateway.seed(CASES_COLLECTION, [case_row(i, agent_id="agent-1" if i % 2 else "agent-9") for i in range(1, 6)])
    service = CaseQueryService(gateway, page_size=2)

    page = await service.list_cases(agent, CaseListQuery(sort_by=SortKey.CREATED_AT, order=SortOrder.ASC))

    assert ids(page.cases) == ["case-1", "case-3"]
    assert page.total_count == 3
    assert page.total_pages == 2
    assert gateway.writes == []

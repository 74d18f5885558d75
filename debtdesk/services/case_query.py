"""
Case list query pipeline.

Turns the raw case rows returned by the gateway into the exact page the
case list renders: role scope, search, status filter, sort, paginate, in
that order.
"""

import math
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from ..core.config import settings
from ..core.context import UserContext
from ..db.gateway import DataGateway
from ..models.schemas import Case, CaseListPage, CaseListQuery, Role, SortKey, SortOrder
from .error_handling import ACCESS_DENIED_MESSAGE, AuthorizationError

logger = structlog.get_logger()

CASES_COLLECTION = "case_intakes"

SORT_KEYS: Dict[SortKey, Callable[[Case], object]] = {
    SortKey.CREATED_AT: lambda c: c.created_at,
    SortKey.AMOUNT: lambda c: c.amount,
    SortKey.UPDATED_AT: lambda c: c.updated_at,
}


def can_view_case(ctx: UserContext, case: Case) -> bool:
    """Whether the caller may see this case at all."""
    if ctx.has_role(Role.ADMIN, Role.DPO):
        return True
    if ctx.role == Role.CLIENT:
        return bool(ctx.client_id) and case.client_id == ctx.client_id
    if ctx.role == Role.AGENT:
        return bool(ctx.user_id) and case.assigned_agent_id == ctx.user_id
    return False


def ensure_can_view(ctx: UserContext, case: Case) -> None:
    if not can_view_case(ctx, case):
        logger.warning("Case access denied", case_id=case.id, user_id=ctx.user_id, role=ctx.role.value)
        raise AuthorizationError(f"{ctx.user_id} may not view case {case.id}", ACCESS_DENIED_MESSAGE)


def scope_cases(cases: Sequence[Case], ctx: UserContext) -> List[Case]:
    """Keep the cases the caller's role may see.

    Enforced here even though the gateway applies row-level security too.
    """
    return [c for c in cases if can_view_case(ctx, c)]


def search_cases(cases: Sequence[Case], search: str) -> List[Case]:
    """Case-insensitive substring match on debtor name, email or reference."""
    if not search:
        return list(cases)
    needle = search.lower()
    return [
        c for c in cases
        if needle in c.debtor.name.lower()
        or needle in (c.debtor.email or "").lower()
        or needle in c.reference.lower()
    ]


def filter_status(cases: Sequence[Case], status: str) -> List[Case]:
    if status == "all":
        return list(cases)
    return [c for c in cases if c.status == status]


def sort_cases(cases: Sequence[Case], sort_by: SortKey, order: SortOrder) -> List[Case]:
    """Stable sort; descending mirrors ascending, ties keep input order."""
    return sorted(cases, key=SORT_KEYS[sort_by], reverse=order == SortOrder.DESC)


def total_pages(count: int, page_size: int) -> int:
    return max(1, math.ceil(count / page_size))


def paginate(cases: Sequence[Case], page: int, page_size: int) -> List[Case]:
    """1-based page slice ``[(page-1)*size, page*size)``."""
    start = (page - 1) * page_size
    return list(cases[start:start + page_size])


def filter_and_sort(cases: Sequence[Case], ctx: UserContext, query: CaseListQuery) -> List[Case]:
    """Everything but pagination."""
    visible = scope_cases(cases, ctx)
    visible = search_cases(visible, query.search)
    visible = filter_status(visible, query.status)
    return sort_cases(visible, query.sort_by, query.order)


def query_cases(
    cases: Sequence[Case],
    ctx: UserContext,
    query: CaseListQuery,
    page_size: Optional[int] = None,
) -> CaseListPage:
    """Run the full pipeline and return one page.

    Out-of-range pages clamp to the last page.
    """
    page_size = page_size or settings.cases_page_size
    ordered = filter_and_sort(cases, ctx, query)
    pages = total_pages(len(ordered), page_size)
    page = min(max(1, query.page), pages)
    return CaseListPage(
        cases=paginate(ordered, page, page_size),
        total_count=len(ordered),
        page=page,
        page_size=page_size,
        total_pages=pages,
    )


class CaseQueryService:
    """Fetches case rows from the gateway and runs the list pipeline."""

    def __init__(self, gateway: DataGateway, page_size: Optional[int] = None):
        self.gateway = gateway
        self.page_size = page_size or settings.cases_page_size

    async def fetch_cases(self) -> List[Case]:
        rows = await self.gateway.select(CASES_COLLECTION)
        return [Case.from_row(row) for row in rows]

    async def list_cases(self, ctx: UserContext, query: CaseListQuery) -> CaseListPage:
        cases = await self.fetch_cases()
        result = query_cases(cases, ctx, query, self.page_size)
        logger.info(
            "Listed cases",
            user_id=ctx.user_id,
            role=ctx.role.value,
            total=result.total_count,
            page=result.page,
        )
        return result

"""Case detail loading with protection against stale responses."""

import asyncio
from typing import Optional

import structlog

from ..core.context import UserContext
from ..models.schemas import CaseDetail, Role
from .action_service import ActionService
from .case_service import CaseService
from .chat_service import ChatService

logger = structlog.get_logger()


class CaseDetailLoader:
    """Holds the case detail currently on screen.

    Every ``load`` bumps a generation counter. A response that completes
    after a newer load has started is dropped, so switching quickly between
    cases can never leave an older case on screen.
    """

    def __init__(self, cases: CaseService, actions: ActionService, chat: ChatService):
        self.cases = cases
        self.actions = actions
        self.chat = chat
        self.current: Optional[CaseDetail] = None
        self.case_id: Optional[str] = None
        self.loading = False
        self._generation = 0

    async def fetch(self, ctx: UserContext, case_id: str) -> CaseDetail:
        """Build the aggregate for one case; nothing is returned if access is denied."""
        view = await self.cases.get_case_view(ctx, case_id)
        actions, conversations = await asyncio.gather(
            self.actions.list_entries(case_id),
            self.chat.list_case_conversations(ctx, case_id),
        )
        case = view.case
        return CaseDetail(
            case=case,
            progress=view.progress,
            actions=actions,
            conversations=conversations,
            can_log_actions=ctx.role == Role.AGENT and case.assigned_agent_id == ctx.user_id,
        )

    async def load(self, ctx: UserContext, case_id: str) -> Optional[CaseDetail]:
        """Load and publish a case; returns None when superseded."""
        self._generation += 1
        generation = self._generation
        self.case_id = case_id
        self.loading = True
        try:
            detail = await self.fetch(ctx, case_id)
        except Exception:
            if generation == self._generation:
                self.loading = False
                self.current = None
            raise
        if generation != self._generation:
            logger.debug("Discarded stale case detail", case_id=case_id)
            return None
        self.loading = False
        self.current = detail
        return detail

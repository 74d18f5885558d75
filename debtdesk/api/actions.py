"""Action audit log endpoints."""

from typing import Dict, List

from fastapi import APIRouter, Depends, status

from ..core.context import UserContext
from ..models.schemas import ActionCreate, ActionEntry
from ..services.action_service import ActionService, describe_action, taxonomy
from ..services.case_service import CaseService
from .deps import get_action_service, get_case_service, get_user_context

router = APIRouter(tags=["Actions"])


@router.get("/actions/taxonomy")
async def get_taxonomy() -> Dict[str, List[Dict[str, str]]]:
    """Known action types grouped by category."""
    return taxonomy()


@router.get("/cases/{case_id}/actions", response_model=List[ActionEntry])
async def list_actions(
    case_id: str,
    ctx: UserContext = Depends(get_user_context),
    cases: CaseService = Depends(get_case_service),
    actions: ActionService = Depends(get_action_service),
):
    """All actions on a case, newest first."""
    await cases.get_case(ctx, case_id)
    return await actions.list_entries(case_id)


@router.post(
    "/cases/{case_id}/actions",
    response_model=ActionEntry,
    status_code=status.HTTP_201_CREATED,
)
async def log_action(
    case_id: str,
    form: ActionCreate,
    ctx: UserContext = Depends(get_user_context),
    cases: CaseService = Depends(get_case_service),
    actions: ActionService = Depends(get_action_service),
):
    """Log an action; only the case's assigned agent may."""
    case = await cases.get_case(ctx, case_id)
    action = await actions.log_action(ctx, case, form)
    return ActionEntry(action=action, display=describe_action(action))

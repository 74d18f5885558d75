"""Case list, detail, creation and document upload endpoints."""

from typing import Dict, List

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
import structlog

from ..core.context import UserContext
from ..models.schemas import (
    Attachment,
    Case,
    CaseCreateRequest,
    CaseDetail,
    CaseListPage,
    CaseListQuery,
    CaseView,
    Conversation,
    SortKey,
    SortOrder,
)
from ..services.action_service import ActionService
from ..services.case_detail import CaseDetailLoader
from ..services.case_query import CaseQueryService
from ..services.case_service import CaseService
from ..services.chat_service import ChatService
from .deps import (
    get_action_service,
    get_case_query_service,
    get_case_service,
    get_chat_service,
    get_user_context,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/cases", tags=["Cases"])


@router.get("", response_model=CaseListPage)
async def list_cases(
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    sort_by: SortKey = SortKey.CREATED_AT,
    order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    ctx: UserContext = Depends(get_user_context),
    service: CaseQueryService = Depends(get_case_query_service),
):
    """Role-scoped, searched, filtered, sorted page of cases."""
    query = CaseListQuery(search=search, status=status_filter, sort_by=sort_by, order=order, page=page)
    return await service.list_cases(ctx, query)


@router.post("", response_model=Case, status_code=status.HTTP_201_CREATED)
async def create_case(
    request: CaseCreateRequest,
    ctx: UserContext = Depends(get_user_context),
    service: CaseService = Depends(get_case_service),
):
    return await service.create_case(ctx, request)


@router.get("/{case_id}", response_model=CaseView)
async def get_case(
    case_id: str,
    ctx: UserContext = Depends(get_user_context),
    service: CaseService = Depends(get_case_service),
):
    return await service.get_case_view(ctx, case_id)


@router.get("/{case_id}/detail", response_model=CaseDetail)
async def get_case_detail(
    case_id: str,
    ctx: UserContext = Depends(get_user_context),
    cases: CaseService = Depends(get_case_service),
    actions: ActionService = Depends(get_action_service),
    chat: ChatService = Depends(get_chat_service),
):
    """Case, progress, actions and case conversations in one response."""
    return await CaseDetailLoader(cases, actions, chat).fetch(ctx, case_id)


@router.get("/{case_id}/conversations", response_model=List[Conversation])
async def list_case_conversations(
    case_id: str,
    ctx: UserContext = Depends(get_user_context),
    cases: CaseService = Depends(get_case_service),
    chat: ChatService = Depends(get_chat_service),
):
    await cases.get_case(ctx, case_id)
    return await chat.list_case_conversations(ctx, case_id)


@router.post("/{case_id}/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(
    case_id: str,
    file: UploadFile = File(...),
    ctx: UserContext = Depends(get_user_context),
    service: CaseService = Depends(get_case_service),
) -> Dict[str, str]:
    """Attach one document to a case the caller can see."""
    await service.get_case(ctx, case_id)
    content = await file.read()
    attachment = Attachment(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        size=len(content),
        content=content,
    )
    reference = await service.upload_document(ctx, case_id, attachment)
    return {"reference": reference, "filename": attachment.filename}

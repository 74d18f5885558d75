"""
Case Service - Business logic for case management.

Fetching a single case with visibility enforcement, creating cases,
attaching documents and deriving the status progress bar.
"""

from typing import Optional

import structlog

from ..core.config import settings
from ..core.context import UserContext
from ..db.gateway import DataGateway, eq
from ..models.schemas import (
    CASE_STATUS_PROGRESSION,
    Attachment,
    Case,
    CaseCreateRequest,
    CaseProgress,
    CaseView,
    Notice,
    Role,
    StatusStep,
)
from ..utils.text import humanize_tag
from .case_query import CASES_COLLECTION, ensure_can_view
from .error_handling import AuthenticationError, AuthorizationError, NotFoundError, ValidationError

logger = structlog.get_logger()


def status_progress(status: str) -> CaseProgress:
    """Progress bar state; statuses outside the progression count as step 0."""
    index = CASE_STATUS_PROGRESSION.index(status) if status in CASE_STATUS_PROGRESSION else -1
    last = len(CASE_STATUS_PROGRESSION) - 1
    steps = [
        StatusStep(
            status=step,
            label=humanize_tag(step),
            active=step == status,
            passed=index > position,
        )
        for position, step in enumerate(CASE_STATUS_PROGRESSION)
    ]
    return CaseProgress(status=status, percent=max(index, 0) / last * 100, steps=steps)


def check_attachment(attachment: Attachment) -> Optional[Notice]:
    """Return a rejection notice, or None when the file is acceptable."""
    if attachment.content_type not in settings.allowed_upload_types:
        return Notice(
            level="error",
            title="Invalid File Type",
            description=(
                f"{attachment.filename} is not a supported file type. "
                "Please use PDF, JPEG, PNG, or DOCX files."
            ),
        )
    if attachment.size > settings.max_upload_bytes:
        return Notice(
            level="error",
            title="File Too Large",
            description=f"{attachment.filename} exceeds 10MB limit.",
        )
    return None


class CaseService:
    """Service class for case operations."""

    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    async def get_case(self, ctx: UserContext, case_id: str) -> Case:
        """Get a case the caller is allowed to see."""
        rows = await self.gateway.select(CASES_COLLECTION, [eq("id", case_id)], limit=1)
        if not rows:
            raise NotFoundError(f"Case {case_id} not found", "Case Not Found")
        case = Case.from_row(rows[0])
        ensure_can_view(ctx, case)
        return case

    async def get_case_view(self, ctx: UserContext, case_id: str) -> CaseView:
        case = await self.get_case(ctx, case_id)
        return CaseView(case=case, progress=status_progress(case.status))

    @staticmethod
    def _owning_client(ctx: UserContext, request: CaseCreateRequest) -> str:
        """Clients always file for their own organisation; staff may name one."""
        if ctx.role != Role.CLIENT:
            return request.client_id or ctx.client_id or ctx.user_id
        own = ctx.client_id or ctx.user_id
        if request.client_id and request.client_id != own:
            logger.warning(
                "Case creation for another client rejected",
                user_id=ctx.user_id,
                requested_client_id=request.client_id,
            )
            raise AuthorizationError(
                f"{ctx.user_id} may not create cases for client {request.client_id}",
                "You can only create cases for your own organisation.",
            )
        return own

    async def create_case(self, ctx: UserContext, request: CaseCreateRequest) -> Case:
        """Insert a new case owned by the caller's client."""
        if not ctx.is_authenticated:
            raise AuthenticationError("Case creation requires an authenticated user")
        client_id = self._owning_client(ctx, request)
        row = await self.gateway.insert(
            CASES_COLLECTION,
            request.to_row(created_by=ctx.user_id, client_id=client_id),
        )
        case = Case.from_row(row)
        logger.info(f"Created case {case.id}", reference=case.reference, client_id=client_id)
        return case

    async def upload_document(self, ctx: UserContext, case_id: str, attachment: Attachment) -> str:
        """Store one document for a case; returns the storage reference."""
        if not ctx.is_authenticated:
            raise AuthenticationError("Document upload requires an authenticated user")
        rejection = check_attachment(attachment)
        if rejection:
            raise ValidationError(rejection.description, rejection.description)
        reference = await self.gateway.upload_file(
            settings.documents_bucket,
            f"{case_id}/{attachment.filename}",
            attachment.content,
            attachment.content_type,
        )
        logger.info("Uploaded case document", case_id=case_id, filename=attachment.filename)
        return reference

"""
Case creation wizard.

Four steps: Debtor Details, Case Details, Documents, Review. Moving forward
is gated by the current step's validation; moving back never is. Submitting
from the review step creates the case and then uploads the documents one by
one, skipping any upload that fails.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..core.context import UserContext
from ..models.schemas import (
    Attachment,
    Case,
    CaseCreateRequest,
    Debtor,
    DebtorAddress,
    Notice,
)
from .case_service import CaseService, check_attachment
from .error_handling import DebtDeskError, ErrorCategory, ValidationError

logger = structlog.get_logger()

STEPS = [
    {"id": 1, "title": "Debtor Details", "description": "Enter debtor information"},
    {"id": 2, "title": "Case Details", "description": "Amount and reference details"},
    {"id": 3, "title": "Documents", "description": "Upload supporting documents"},
    {"id": 4, "title": "Review", "description": "Confirm case details"},
]

CURRENCIES = [
    {"code": "EUR", "name": "Euro (€)", "symbol": "€"},
    {"code": "USD", "name": "US Dollar ($)", "symbol": "$"},
    {"code": "GBP", "name": "British Pound (£)", "symbol": "£"},
    {"code": "CHF", "name": "Swiss Franc", "symbol": "CHF"},
]

REQUIRED_FIELDS_NOTICE = Notice(
    level="error",
    title="Required Fields Missing",
    description="Please fill in all required fields before continuing.",
)


@dataclass
class CaseForm:
    """Raw wizard input, as typed."""
    debtor_name: str = ""
    debtor_email: str = ""
    debtor_phone: str = ""
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    amount: str = ""
    currency: str = "EUR"
    description: str = ""
    reference: str = ""
    original_creditor: str = ""
    documents: List[Attachment] = field(default_factory=list)


@dataclass
class SubmissionResult:
    """Outcome of a submit; uploads that failed are listed, not raised."""
    case: Case
    uploaded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    notice: Optional[Notice] = None


class CaseWizard:
    """Step state machine for one case creation."""

    def __init__(self, cases: CaseService, ctx: UserContext, form: Optional[CaseForm] = None):
        self.cases = cases
        self.ctx = ctx
        self.form = form or CaseForm()
        self.step = 1
        self.submitting = False
        self.notices: List[Notice] = []

    @property
    def progress(self) -> float:
        return self.step / len(STEPS) * 100

    def validate_step(self, step: int) -> bool:
        form = self.form
        if step == 1:
            return bool(form.debtor_name and form.debtor_email and form.city and form.country)
        if step == 2:
            return bool(form.amount and form.currency and form.reference)
        return step in (3, 4)

    def next_step(self) -> bool:
        if not self.validate_step(self.step):
            self.notices.append(REQUIRED_FIELDS_NOTICE)
            return False
        self.step = min(len(STEPS), self.step + 1)
        return True

    def prev_step(self) -> None:
        self.step = max(1, self.step - 1)

    def add_files(self, files: List[Attachment]) -> List[Attachment]:
        """Accept the valid files; each rejected one gets its own notice."""
        accepted = []
        for attachment in files:
            rejection = check_attachment(attachment)
            if rejection:
                self.notices.append(rejection)
                continue
            accepted.append(attachment)
        self.form.documents.extend(accepted)
        return accepted

    def remove_document(self, index: int) -> None:
        self.form.documents = [d for i, d in enumerate(self.form.documents) if i != index]

    def build_request(self) -> CaseCreateRequest:
        form = self.form
        try:
            amount = Decimal(form.amount)
        except InvalidOperation:
            raise ValidationError(f"Amount is not a number: {form.amount!r}", "Please enter a valid amount.")
        if not amount.is_finite() or amount < 0:
            raise ValidationError(f"Amount out of range: {form.amount!r}", "Please enter a valid amount.")
        try:
            return self._request(amount)
        except PydanticValidationError as e:
            raise ValidationError(str(e), "Please check the case details and try again.") from e

    def _request(self, amount: Decimal) -> CaseCreateRequest:
        form = self.form
        return CaseCreateRequest(
            debtor=Debtor(
                name=form.debtor_name,
                email=form.debtor_email,
                phone=form.debtor_phone or None,
                address=DebtorAddress(
                    street=form.street or None,
                    city=form.city,
                    postal_code=form.postal_code or None,
                    country=form.country,
                ),
            ),
            amount=amount,
            currency=form.currency,
            description=form.description,
            reference=form.reference,
            original_creditor=form.original_creditor,
            client_id=self.ctx.client_id or self.ctx.user_id,
        )

    async def submit(self) -> Optional[SubmissionResult]:
        """Create the case, then upload each document; None if not on the review step."""
        if self.step != len(STEPS) or not self.validate_step(self.step):
            return None

        self.submitting = True
        try:
            return await self._submit()
        finally:
            self.submitting = False

    async def _submit(self) -> SubmissionResult:
        try:
            request = self.build_request()
        except ValidationError as e:
            logger.warning("Case request rejected", error=e.message)
            self.notices.append(Notice(level="error", title="Invalid Case Details", description=e.user_message))
            raise

        try:
            case = await self.cases.create_case(self.ctx, request)
        except DebtDeskError as e:
            logger.error("Case creation failed", error=e.message)
            self.notices.append(Notice(
                level="error",
                title="Case Creation Failed",
                description="There was an error creating the case. Please try again.",
            ))
            raise

        result = SubmissionResult(case=case)
        for attachment in self.form.documents:
            try:
                await self.cases.upload_document(self.ctx, case.id, attachment)
            except DebtDeskError as e:
                logger.warning(
                    "Document upload failed",
                    case_id=case.id,
                    filename=attachment.filename,
                    error=e.message,
                    category=ErrorCategory.PARTIAL_FAILURE.value,
                )
                result.failed.append(attachment.filename)
                continue
            result.uploaded.append(attachment.filename)

        result.notice = Notice(
            title="Case Created Successfully",
            description=f"Case {self.form.reference} has been created and is now being processed.",
        )
        self.notices.append(result.notice)
        return result

"""
Forms Router

API endpoints for authoring, distributing, reviewing and signing
permission forms.

Endpoints:
- POST /forms - Create a DRAFT form
- GET /forms - List forms visible to the caller
- POST /forms/bulk-close - Close several forms at once
- POST /forms/bulk-remind - Remind parents with unsigned slips on several forms
- GET /forms/{id} - Get form details with submission counts
- PATCH /forms/{id} - Update a form
- DELETE /forms/{id} - Delete a form
- POST /forms/{id}/duplicate - Copy a form into a new DRAFT
- GET /forms/{id}/share - List shares
- POST /forms/{id}/share - Share a form with a staff member
- DELETE /forms/{id}/share/{user_id} - Remove a share
- POST /forms/{id}/distribute - Send the form to linked parents
- POST /forms/{id}/close - Close an ACTIVE form
- POST /forms/{id}/reopen - Re-open a CLOSED form
- POST /forms/{id}/submit-for-review - Submit for review
- POST /forms/{id}/approve - Approve (reviewer)
- POST /forms/{id}/request-revision - Send back with comments (reviewer)
- GET /forms/{id}/review-log - Review history
- GET /forms/{id}/export-csv - Download submissions as CSV
- GET /forms/{id}/sign - Parent sign view
- POST /forms/{id}/sign - Sign for one student

Security:
- Role checks via require_permission; resource rules in the service layer
- Rate limiting on signing, distribution, reminders and review decisions
- Structured error responses: {"error": CODE, "message": text}
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core import rate_limit
from permission_slips.core.auth import CurrentUser
from permission_slips.core.database import get_db
from permission_slips.core.permissions import Operation, require_permission
from permission_slips.modules.audit import get_request_context
from permission_slips.modules.forms import (
    distribution,
    export,
    reminders,
    review,
    service,
    signing,
)
from permission_slips.modules.forms.exceptions import FormServiceError
from permission_slips.modules.forms.models import FormStatus, PermissionForm
from permission_slips.modules.forms.schemas import (
    ApproveRequest,
    BulkCloseRequest,
    BulkCloseResponse,
    BulkRemindRequest,
    BulkRemindResponse,
    DistributeRequest,
    DistributeResponse,
    FormCreate,
    FormDetailResponse,
    FormListResponse,
    FormResponse,
    FormUpdate,
    RequestRevisionRequest,
    ReviewLogResponse,
    ShareRequest,
    ShareResponse,
    SignRequest,
    SignResponse,
    SignViewResponse,
    SubmitForReviewRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: FormServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _form_response(form: PermissionForm) -> FormResponse:
    return FormResponse.model_validate(form)


# ============================================
# Authoring
# ============================================


@router.post(
    "",
    response_model=FormResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Form",
)
async def create_form(
    data: FormCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_CREATE)),
) -> FormResponse:
    """Create a DRAFT form owned by the caller."""
    ip_address, user_agent = get_request_context(request)
    try:
        form = await service.create_form(
            db, user, data, ip_address=ip_address, user_agent=user_agent
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


@router.get(
    "",
    response_model=FormListResponse,
    summary="List Forms",
)
async def list_forms(
    status_filter: FormStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_VIEW)),
) -> FormListResponse:
    """List forms visible to the caller, newest first."""
    forms = await service.list_forms(db, user, status_filter)
    return FormListResponse(forms=[_form_response(f) for f in forms], total=len(forms))


@router.post(
    "/bulk-close",
    response_model=BulkCloseResponse,
    summary="Bulk Close Forms",
)
async def bulk_close_forms(
    data: BulkCloseRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_BULK_CLOSE)),
) -> BulkCloseResponse:
    """
    Close up to 50 forms.

    Forms that cannot be closed are reported in `skipped` with a reason
    (NOT_FOUND, FORBIDDEN, NOT_ACTIVE) instead of failing the request.
    """
    ip_address, user_agent = get_request_context(request)
    return await service.bulk_close(
        db, user, data.form_ids, ip_address=ip_address, user_agent=user_agent
    )


@router.post(
    "/bulk-remind",
    response_model=BulkRemindResponse,
    summary="Bulk Remind Parents",
)
async def bulk_remind_forms(
    data: BulkRemindRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_BULK_REMIND)),
) -> BulkRemindResponse:
    """
    Email every parent with an unsigned slip on up to 50 forms.

    Forms that are not ACTIVE or not the caller's are reported in `skipped`.
    Email failures are counted in `total_errors`, never raised.
    """
    await rate_limit.enforce(rate_limit.REMIND, user.id)
    return await reminders.bulk_remind(db, user, data.form_ids)


@router.get(
    "/{form_id}",
    response_model=FormDetailResponse,
    summary="Get Form",
)
async def get_form(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_VIEW)),
) -> FormDetailResponse:
    """Get a form with submission counts per status."""
    try:
        form, counts = await service.get_form(db, user, form_id)
        return FormDetailResponse(
            **_form_response(form).model_dump(),
            submission_counts=counts,
        )
    except FormServiceError as e:
        _handle_service_error(e)


@router.patch(
    "/{form_id}",
    response_model=FormResponse,
    summary="Update Form",
)
async def update_form(
    form_id: str,
    data: FormUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_UPDATE)),
) -> FormResponse:
    """
    Update a form.

    Content can only change while the form is DRAFT; `reminders_enabled`
    can be toggled at any time.
    """
    ip_address, user_agent = get_request_context(request)
    try:
        form = await service.update_form(
            db, user, form_id, data, ip_address=ip_address, user_agent=user_agent
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


@router.delete(
    "/{form_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Form",
)
async def delete_form(
    form_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_DELETE)),
) -> Response:
    ip_address, user_agent = get_request_context(request)
    try:
        await service.delete_form(db, user, form_id, ip_address=ip_address, user_agent=user_agent)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/duplicate",
    response_model=FormResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate Form",
)
async def duplicate_form(
    form_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_DUPLICATE)),
) -> FormResponse:
    ip_address, user_agent = get_request_context(request)
    try:
        copy = await service.duplicate_form(
            db, user, form_id, ip_address=ip_address, user_agent=user_agent
        )
        return _form_response(copy)
    except FormServiceError as e:
        _handle_service_error(e)


# ============================================
# Sharing
# ============================================


@router.get(
    "/{form_id}/share",
    response_model=list[ShareResponse],
    summary="List Shares",
)
async def list_shares(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_VIEW)),
) -> list[ShareResponse]:
    try:
        return await service.list_shares(db, user, form_id)
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/share",
    response_model=ShareResponse,
    summary="Share Form",
)
async def share_form(
    form_id: str,
    data: ShareRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_SHARE)),
) -> ShareResponse:
    """Share a form with a staff member of the same school, or update their access."""
    ip_address, user_agent = get_request_context(request)
    try:
        return await service.share_form(
            db,
            user,
            form_id,
            data.email,
            data.can_edit,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except FormServiceError as e:
        _handle_service_error(e)


@router.delete(
    "/{form_id}/share/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove Share",
)
async def unshare_form(
    form_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_SHARE)),
) -> Response:
    try:
        await service.unshare_form(db, user, form_id, user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except FormServiceError as e:
        _handle_service_error(e)


# ============================================
# Lifecycle
# ============================================


@router.post(
    "/{form_id}/distribute",
    response_model=DistributeResponse,
    summary="Distribute Form",
    description="""
Send the form to every parent linked to a student of the form's school
(or of the given groups).

This is an atomic operation that:
1. Activates a DRAFT form
2. Creates one PENDING submission per (parent, student), skipping existing ones
3. Emails each parent once, listing all of their students

Email failures never fail the request; they are reported in `errors`.
Re-distributing creates no duplicate submissions.
""",
)
async def distribute_form(
    form_id: str,
    request: Request,
    data: DistributeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_DISTRIBUTE)),
) -> DistributeResponse:
    await rate_limit.enforce(rate_limit.DISTRIBUTE, user.id)

    ip_address, user_agent = get_request_context(request)
    try:
        return await distribution.distribute_form(
            db,
            user,
            form_id,
            data.group_ids if data else None,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/close",
    response_model=FormResponse,
    summary="Close Form",
)
async def close_form(
    form_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_CLOSE)),
) -> FormResponse:
    ip_address, user_agent = get_request_context(request)
    try:
        form = await service.close_form(
            db, user, form_id, ip_address=ip_address, user_agent=user_agent
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/reopen",
    response_model=FormResponse,
    summary="Re-open Form",
)
async def reopen_form(
    form_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_REOPEN)),
) -> FormResponse:
    """Re-open a CLOSED form whose event date has not passed."""
    ip_address, user_agent = get_request_context(request)
    try:
        form = await service.reopen_form(
            db, user, form_id, ip_address=ip_address, user_agent=user_agent
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


# ============================================
# Review
# ============================================


@router.post(
    "/{form_id}/submit-for-review",
    response_model=FormResponse,
    summary="Submit Form for Review",
)
async def submit_for_review(
    form_id: str,
    request: Request,
    data: SubmitForReviewRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_SUBMIT_FOR_REVIEW)),
) -> FormResponse:
    data = data or SubmitForReviewRequest()
    ip_address, user_agent = get_request_context(request)
    try:
        form = await review.submit_for_review(
            db,
            user,
            form_id,
            review_needed_by=data.review_needed_by,
            is_expedited=data.is_expedited,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/approve",
    response_model=FormResponse,
    summary="Approve Form",
)
async def approve_form(
    form_id: str,
    request: Request,
    data: ApproveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_APPROVE)),
) -> FormResponse:
    """Approve a form of the reviewer's school that is awaiting review."""
    await rate_limit.enforce(rate_limit.REVIEW, user.id)

    ip_address, user_agent = get_request_context(request)
    try:
        form = await review.approve_form(
            db,
            user,
            form_id,
            data.comments if data else None,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/request-revision",
    response_model=FormResponse,
    summary="Request Revision",
)
async def request_revision(
    form_id: str,
    data: RequestRevisionRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_REQUEST_REVISION)),
) -> FormResponse:
    """Send a form back to its teacher. Comments are required."""
    await rate_limit.enforce(rate_limit.REVIEW, user.id)

    ip_address, user_agent = get_request_context(request)
    try:
        form = await review.request_revision(
            db,
            user,
            form_id,
            data.comments,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return _form_response(form)
    except FormServiceError as e:
        _handle_service_error(e)


@router.get(
    "/{form_id}/review-log",
    response_model=ReviewLogResponse,
    summary="Get Review Log",
)
async def get_review_log(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_REVIEW_LOG_VIEW)),
) -> ReviewLogResponse:
    try:
        entries = await review.get_review_log(db, user, form_id)
        return ReviewLogResponse(entries=entries)
    except FormServiceError as e:
        _handle_service_error(e)


# ============================================
# Export
# ============================================


@router.get(
    "/{form_id}/export-csv",
    summary="Export Submissions",
    response_class=Response,
    responses={
        200: {"content": {"text/csv": {}}, "description": "One row per submission"},
        403: {"description": "Caller may not read this form"},
        404: {"description": "Form not found"},
    },
)
async def export_submissions(
    form_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_EXPORT)),
) -> Response:
    ip_address, user_agent = get_request_context(request)
    try:
        exported = await export.export_submissions_csv(
            db, user, form_id, ip_address=ip_address, user_agent=user_agent
        )
    except FormServiceError as e:
        _handle_service_error(e)

    return Response(
        content=exported.content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


# ============================================
# Signing
# ============================================


@router.get(
    "/{form_id}/sign",
    response_model=SignViewResponse,
    summary="Get Sign View",
)
async def get_sign_view(
    form_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_SIGN_VIEW)),
) -> SignViewResponse:
    """The form plus the caller's students, each with a has_signed flag."""
    ip_address, user_agent = get_request_context(request)
    try:
        return await signing.get_sign_view(
            db, user, form_id, ip_address=ip_address, user_agent=user_agent
        )
    except FormServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{form_id}/sign",
    response_model=SignResponse,
    summary="Sign Form",
)
async def sign_form(
    form_id: str,
    data: SignRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.FORM_SIGN)),
) -> SignResponse:
    """
    Sign a form for one linked student.

    Exactly one signature is recorded per (form, parent, student); a second
    attempt returns ALREADY_SIGNED.
    """
    await rate_limit.enforce(rate_limit.SIGN, user.id)

    ip_address, user_agent = get_request_context(request)
    try:
        return await signing.sign_form(
            db, user, form_id, data, ip_address=ip_address, user_agent=user_agent
        )
    except FormServiceError as e:
        _handle_service_error(e)

"""
Submissions Router

Endpoints:
- GET /submissions/{id}/pdf - Download the signed permission slip as PDF
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.database import get_db
from permission_slips.core.permissions import Operation, require_permission
from permission_slips.modules.audit import get_request_context
from permission_slips.modules.forms import signing
from permission_slips.modules.forms.exceptions import FormServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{submission_id}/pdf",
    summary="Download Signed PDF",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Signed permission slip"},
        400: {"description": "Submission is not signed yet"},
        403: {"description": "Not the parent, the form's teacher or an admin"},
        404: {"description": "Submission not found"},
    },
)
async def download_signed_pdf(
    submission_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.SUBMISSION_PDF_DOWNLOAD)),
) -> Response:
    ip_address, user_agent = get_request_context(request)
    try:
        pdf = await signing.get_signed_pdf(
            db, user, submission_id, ip_address=ip_address, user_agent=user_agent
        )
    except FormServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.error_code, "message": e.message},
        ) from e

    return Response(
        content=pdf.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{pdf.filename}"'},
    )

"""
Submission Export

CSV export of a form's submissions for the staff who run the form: one
row per (parent, student) with status, signing time and the answer to
every custom field, in field order.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.modules.audit import AuditAction, record
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.models import FormField, FormSubmission, SubmissionStatus
from permission_slips.modules.forms.service import ensure_can_read, load_form

logger = logging.getLogger(__name__)

BASE_HEADERS = ["Student Name", "Grade", "Parent Name", "Parent Email", "Status", "Signed At"]

# Leading characters spreadsheets treat as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


@dataclass
class ExportedCsv:
    filename: str
    content: str
    rows: int


def csv_filename(title: str) -> str:
    """Filename-safe form title (letters, digits and dashes, 40 chars max)."""
    safe = re.sub(r"[^a-zA-Z0-9\s]", "", title)
    safe = re.sub(r"\s+", "-", safe.strip())[:40]
    return f"{safe or 'form'}-submissions.csv"


def _cell(value: str | None) -> str:
    text = value or ""
    if text.startswith(_FORMULA_PREFIXES):
        return f"'{text}"
    return text


def build_submissions_csv(fields: list[FormField], submissions: list[FormSubmission]) -> str:
    ordered = sorted(fields, key=lambda f: f.order)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(BASE_HEADERS + [_cell(f.label) for f in ordered])

    for submission in submissions:
        answers = {r.field_id: r.response for r in submission.responses}
        signed_at = submission.signed_at.strftime("%Y-%m-%d %H:%M") if submission.signed_at else ""
        writer.writerow(
            [
                _cell(submission.student.full_name),
                _cell(submission.student.grade),
                _cell(submission.parent.full_name),
                _cell(submission.parent.email),
                SubmissionStatus(submission.status).value,
                signed_at,
            ]
            + [_cell(answers.get(f.id)) for f in ordered]
        )
    return buffer.getvalue()


async def export_submissions_csv(
    db: AsyncSession,
    user: CurrentUser,
    form_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ExportedCsv:
    """
    Export every submission of a form as CSV.

    Allowed for whoever may read the form (owner, share, school admin).

    Raises:
        FormNotFoundError, ForbiddenError
    """
    form = await load_form(db, form_id)
    await ensure_can_read(db, user, form)

    submissions = await repository.list_form_submissions(db, form.id)
    content = build_submissions_csv(list(form.fields), submissions)
    logger.info(f"Form {form.id}: exported {len(submissions)} submission(s) for {user.id}")

    await record(
        AuditAction.DATA_EXPORT,
        actor=user,
        resource_type="PermissionForm",
        resource_id=form.id,
        metadata={"format": "csv", "rows": len(submissions)},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return ExportedCsv(filename=csv_filename(form.title), content=content, rows=len(submissions))

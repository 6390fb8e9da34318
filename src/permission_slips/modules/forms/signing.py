"""
Signing

Records a parent's signature for one student on one form, exactly once.

Concurrency: there is no application lock. The (form, parent, student)
unique constraint plus a conditional upsert (update only while the row is
not SIGNED) guarantees that of two concurrent sign requests one succeeds
and the other gets ALREADY_SIGNED, across any number of API instances.

Also serves the parent's sign view and the signed PDF download.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.email import send_signature_confirmation
from permission_slips.core.pdf import PermissionPdfData, build_pdf_filename, render_permission_pdf
from permission_slips.modules.audit import AuditAction, record
from permission_slips.modules.forms import repository
from permission_slips.modules.forms.exceptions import (
    AlreadySignedError,
    DeadlinePassedError,
    ForbiddenError,
    FormNotActiveError,
    FormNotFoundError,
    FullySignedError,
    NoLinkedStudentsError,
    NotYetSignedError,
    StudentNotLinkedError,
    SubmissionNotFoundError,
)
from permission_slips.modules.forms.models import FormStatus, SubmissionStatus
from permission_slips.modules.forms.schemas import (
    FormResponse,
    SignRequest,
    SignResponse,
    SignViewResponse,
    SignViewStudent,
)
from permission_slips.modules.schools.repository import SchoolRepository
from permission_slips.modules.students import repository as students_repository
from permission_slips.modules.users.models import ADMIN_ROLES, UserRole

logger = logging.getLogger(__name__)


async def sign_form(
    db: AsyncSession,
    parent: CurrentUser,
    form_id: str,
    data: SignRequest,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SignResponse:
    """
    Sign a form for one of the caller's students.

    Preconditions are checked in order: form exists, form is ACTIVE,
    deadline not passed, student linked to the caller.

    Raises:
        FormNotFoundError, FormNotActiveError, DeadlinePassedError,
        StudentNotLinkedError, AlreadySignedError
    """
    form = await repository.get_form(db, form_id)
    if not form:
        raise FormNotFoundError(form_id)
    if form.status != FormStatus.ACTIVE:
        raise FormNotActiveError()

    now = datetime.now(UTC)
    if now > form.deadline:
        raise DeadlinePassedError()

    link = await students_repository.get_parent_link(db, parent.id, data.student_id)
    if not link:
        logger.warning(f"Parent {parent.id} tried to sign for unlinked student {data.student_id}")
        raise StudentNotLinkedError()

    known_fields = {f.id for f in form.fields}
    answers = [(a.field_id, a.response) for a in data.field_responses if a.field_id in known_fields]
    if len(answers) != len(data.field_responses):
        logger.warning(f"Ignoring answers to unknown fields on form {form_id}")

    try:
        # ============================================
        # ATOMIC TRANSACTION: signature + field responses
        # ============================================
        existing = await repository.get_submission_for_update(
            db, form_id=form.id, parent_id=parent.id, student_id=data.student_id
        )
        if existing is not None and existing.status == SubmissionStatus.SIGNED:
            raise AlreadySignedError()

        submission_id = await repository.upsert_signed_submission(
            db,
            form_id=form.id,
            parent_id=parent.id,
            student_id=data.student_id,
            signature_data=data.signature_data,
            signed_at=now,
            ip_address=ip_address,
        )
        if submission_id is None:
            # A concurrent request signed between our read and our write
            raise AlreadySignedError()

        await repository.replace_field_responses(db, submission_id, answers)

        await db.commit()
        # ============================================
        # END ATOMIC TRANSACTION
        # ============================================
    except Exception:
        await db.rollback()
        raise

    student = await students_repository.get_student(db, data.student_id)
    logger.info(f"Form {form_id} signed by parent {parent.id} for student {data.student_id}")

    await record(
        AuditAction.SIGNATURE_SUBMIT,
        actor=parent,
        resource_type="FormSubmission",
        resource_id=submission_id,
        metadata={
            "formId": form.id,
            "formTitle": form.title,
            "studentId": data.student_id,
            "studentName": student.full_name,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )

    try:
        sent = await send_signature_confirmation(
            to_email=parent.email,
            parent_name=parent.name or "Parent",
            form_title=form.title,
            student_name=student.full_name,
            submission_id=submission_id,
        )
        if not sent:
            logger.error(f"Failed to send signature confirmation for submission {submission_id}")
    except Exception as e:
        logger.error(f"Exception sending signature confirmation: {e}", exc_info=True)

    return SignResponse(submission_id=submission_id, status=SubmissionStatus.SIGNED, signed_at=now)


async def get_sign_view(
    db: AsyncSession,
    parent: CurrentUser,
    form_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SignViewResponse:
    """
    Load what a parent needs to sign a form: the form and their students
    with a per-student has_signed flag.

    Raises:
        FormNotFoundError, FormNotActiveError
        NoLinkedStudentsError: The parent has no linked students
        FullySignedError: Every linked student is already signed for
    """
    form = await repository.get_form(db, form_id)
    if not form:
        raise FormNotFoundError(form_id)
    if form.status != FormStatus.ACTIVE:
        raise FormNotActiveError()

    students = await students_repository.list_students_for_parent(db, parent.id)
    if not students:
        raise NoLinkedStudentsError()

    submissions = await repository.list_parent_submissions(db, form.id, parent.id)
    signed = {s.student_id for s in submissions if s.status == SubmissionStatus.SIGNED}

    view_students = [
        SignViewStudent(
            id=s.id,
            first_name=s.first_name,
            last_name=s.last_name,
            grade=s.grade,
            has_signed=s.id in signed,
        )
        for s in students
    ]
    if all(s.has_signed for s in view_students):
        raise FullySignedError()

    await record(
        AuditAction.FORM_VIEW,
        actor=parent,
        resource_type="PermissionForm",
        resource_id=form.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return SignViewResponse(
        form=FormResponse.model_validate(form),
        deadline=form.deadline,
        students=view_students,
    )


@dataclass
class SignedPdf:
    filename: str
    content: bytes


async def get_signed_pdf(
    db: AsyncSession,
    user: CurrentUser,
    submission_id: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SignedPdf:
    """
    Render the signed permission slip for a submission.

    Allowed for the submission's parent, the form's teacher, and admins.

    Raises:
        SubmissionNotFoundError, ForbiddenError, NotYetSignedError
    """
    submission = await repository.get_submission(db, submission_id)
    if not submission:
        raise SubmissionNotFoundError(submission_id)

    form = submission.form
    is_parent = submission.parent_id == user.id
    is_teacher = form.teacher_id == user.id
    is_admin = user.role == UserRole.SUPER_ADMIN.value or (
        user.role in {r.value for r in ADMIN_ROLES} and form.school_id == user.school_id
    )
    if not (is_parent or is_teacher or is_admin):
        logger.warning(f"User {user.id} denied PDF for submission {submission_id}")
        raise ForbiddenError("You do not have access to this submission.")

    if submission.status != SubmissionStatus.SIGNED or submission.signed_at is None:
        raise NotYetSignedError()

    school_name = None
    if form.school_id:
        school = await SchoolRepository.get_by_id(db, form.school_id)
        school_name = school.name if school else None

    student = submission.student
    parent = submission.parent
    content = render_permission_pdf(
        PermissionPdfData(
            form_title=form.title,
            form_description=form.description,
            event_date=form.event_date,
            event_type=form.event_type.value,
            deadline=form.deadline,
            teacher_name=form.teacher.full_name,
            school_name=school_name,
            student_name=student.full_name,
            student_grade=student.grade,
            parent_name=parent.full_name,
            parent_email=parent.email,
            signature_data=submission.signature_data,
            signed_at=submission.signed_at,
            ip_address=submission.ip_address,
            field_responses=[(r.field.label, r.response) for r in submission.responses],
        )
    )

    logger.info(f"PDF generated for submission {submission_id} by {user.id}")
    await record(
        AuditAction.SIGNATURE_VIEW,
        actor=user,
        resource_type="FormSubmission",
        resource_id=submission_id,
        metadata={"formId": form.id, "studentId": student.id},
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return SignedPdf(
        filename=build_pdf_filename(form.title, student.full_name),
        content=content,
    )

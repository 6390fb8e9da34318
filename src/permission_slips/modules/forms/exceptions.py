"""
Form Service Errors

Every expected failure of the forms services is a FormServiceError
subclass carrying a stable error code and HTTP status. Routers convert
them to HTTPException with {"error": code, "message": message}.
"""


class FormServiceError(Exception):
    """Base exception for form service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class FormNotFoundError(FormServiceError):
    """Raised when a form does not exist."""

    def __init__(self, form_id: str | None = None):
        message = f"Form {form_id} not found" if form_id else "Form not found"
        super().__init__(message=message, error_code="FORM_NOT_FOUND", status_code=404)


class SubmissionNotFoundError(FormServiceError):
    def __init__(self, submission_id: str | None = None):
        message = (
            f"Submission {submission_id} not found" if submission_id else "Submission not found"
        )
        super().__init__(message=message, error_code="SUBMISSION_NOT_FOUND", status_code=404)


class UserNotFoundError(FormServiceError):
    def __init__(self, email: str):
        super().__init__(
            message=f"No user found with email {email}",
            error_code="USER_NOT_FOUND",
            status_code=404,
        )


# ---------------------------------------------------------------------------
# Authorization (resource level)
# ---------------------------------------------------------------------------


class ForbiddenError(FormServiceError):
    """Raised when the caller may not act on this particular form."""

    def __init__(self, message: str = "You do not have access to this form."):
        super().__init__(message=message, error_code="FORBIDDEN", status_code=403)


class NotFormOwnerError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="Only the teacher who created this form can do this.",
            error_code="NOT_FORM_OWNER",
            status_code=403,
        )


class DifferentSchoolError(FormServiceError):
    """Raised when a reviewer acts on a form from another school."""

    def __init__(self):
        super().__init__(
            message="You can only review forms from your own school.",
            error_code="DIFFERENT_SCHOOL",
            status_code=403,
        )


# ---------------------------------------------------------------------------
# Form lifecycle
# ---------------------------------------------------------------------------


class FormNotActiveError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This form is not accepting signatures.",
            error_code="FORM_NOT_ACTIVE",
            status_code=400,
        )


class FormClosedError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This form is closed. Re-open it before distributing.",
            error_code="FORM_CLOSED",
            status_code=400,
        )


class FormNotEditableError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="Only draft forms can be edited.",
            error_code="FORM_NOT_EDITABLE",
            status_code=400,
        )


class FormNotDraftError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="Only draft forms can be submitted for review.",
            error_code="FORM_NOT_DRAFT",
            status_code=400,
        )


class InvalidFormStatusError(FormServiceError):
    """Raised when a status change is not allowed from the form's current status."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move form from {current} to {target}.",
            error_code="INVALID_FORM_STATUS",
            status_code=400,
        )


class DeadlinePassedError(FormServiceError):
    """
    Raised when a time guard fails.

    Signing after the deadline uses DEADLINE_PASSED; re-opening a form
    whose event date has passed uses EVENT_DATE_PASSED.
    """

    def __init__(
        self,
        message: str = "The deadline for this form has passed.",
        error_code: str = "DEADLINE_PASSED",
    ):
        super().__init__(message=message, error_code=error_code, status_code=400)


class InvalidDatesError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="The deadline must be before the event date.",
            error_code="INVALID_DATES",
            status_code=400,
        )


# ---------------------------------------------------------------------------
# Review workflow
# ---------------------------------------------------------------------------


class InvalidReviewStateError(FormServiceError):
    def __init__(self, current: str | None):
        super().__init__(
            message=f"Form is not awaiting review (review status: {current or 'none'}).",
            error_code="INVALID_REVIEW_STATE",
            status_code=400,
        )


class CommentsRequiredError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="Comments are required when requesting a revision.",
            error_code="COMMENTS_REQUIRED",
            status_code=400,
        )


class ReviewNotRequiredError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This form does not require review.",
            error_code="REVIEW_NOT_REQUIRED",
            status_code=400,
        )


class ReviewNotApprovedError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This form must be approved by a reviewer before it can be distributed.",
            error_code="REVIEW_NOT_APPROVED",
            status_code=400,
        )


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------


class NoStudentsInSchoolError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="There are no students to distribute this form to.",
            error_code="NO_STUDENTS_IN_SCHOOL",
            status_code=400,
        )


class NoStudentsWithParentsError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="None of the targeted students are linked to a parent.",
            error_code="NO_STUDENTS_WITH_PARENTS",
            status_code=400,
        )


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class StudentNotLinkedError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This student is not linked to your account.",
            error_code="STUDENT_NOT_LINKED",
            status_code=400,
        )


class AlreadySignedError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This form has already been signed for this student.",
            error_code="ALREADY_SIGNED",
            status_code=400,
        )


class NoLinkedStudentsError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="There are no students linked to your account.",
            error_code="NO_LINKED_STUDENTS",
            status_code=400,
        )


class FullySignedError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="You have already signed this form for all of your students.",
            error_code="FULLY_SIGNED_FOR_PARENT",
            status_code=400,
        )


class NotYetSignedError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This submission has not been signed yet.",
            error_code="NOT_YET_SIGNED",
            status_code=400,
        )


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


class CannotShareWithSelfError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="You cannot share a form with yourself.",
            error_code="CANNOT_SHARE_WITH_SELF",
            status_code=400,
        )


class CannotShareWithParentError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="Forms can only be shared with staff members.",
            error_code="CANNOT_SHARE_WITH_PARENT",
            status_code=400,
        )


class ShareNotFoundError(FormServiceError):
    def __init__(self):
        super().__init__(
            message="This form is not shared with that user.",
            error_code="SHARE_NOT_FOUND",
            status_code=404,
        )

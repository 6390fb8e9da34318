"""
Forms Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# Re-use enums from models
from permission_slips.modules.forms.models import (
    EventType,
    FieldType,
    FormStatus,
    ReviewAction,
    ReviewStatus,
    SubmissionStatus,
)

MAX_BULK_CLOSE = 50
MAX_BULK_REMIND = 50


# =============================================================================
# Form authoring
# =============================================================================


class FormFieldInput(BaseModel):
    """A custom question on a form."""

    label: str = Field(..., min_length=1, max_length=200)
    field_type: FieldType
    required: bool = False


class FormCreate(BaseModel):
    """Request body for POST /forms."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    event_date: datetime
    event_type: EventType = EventType.OTHER
    deadline: datetime
    requires_review: bool = False
    reminders_enabled: bool = True
    fields: list[FormFieldInput] = Field(default_factory=list, max_length=50)

    @model_validator(mode="after")
    def validate_dates(self) -> "FormCreate":
        if self.deadline >= self.event_date:
            raise ValueError("deadline must be before event_date")
        return self


class FormUpdate(BaseModel):
    """Request body for PATCH /forms/{id}. Omitted fields are unchanged."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=2000)
    event_date: datetime | None = None
    event_type: EventType | None = None
    deadline: datetime | None = None
    requires_review: bool | None = None
    reminders_enabled: bool | None = None
    fields: list[FormFieldInput] | None = Field(None, max_length=50)


class FormFieldResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    field_type: FieldType
    required: bool
    order: int


class FormDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_url: str
    file_size: int
    mime_type: str
    description: str | None = None
    requires_ack: bool
    order: int


class FormResponse(BaseModel):
    """A permission form as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    teacher_id: str
    school_id: str | None = None
    title: str
    description: str
    event_date: datetime
    event_type: EventType
    deadline: datetime
    status: FormStatus
    requires_review: bool
    review_status: ReviewStatus | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_comments: str | None = None
    review_needed_by: datetime | None = None
    is_expedited: bool
    reminders_enabled: bool
    fields: list[FormFieldResponse] = Field(default_factory=list)
    documents: list[FormDocumentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class FormDetailResponse(FormResponse):
    """Form plus submission counts per status."""

    submission_counts: dict[str, int] = Field(default_factory=dict)


class FormListResponse(BaseModel):
    forms: list[FormResponse]
    total: int


# =============================================================================
# Sharing
# =============================================================================


class ShareRequest(BaseModel):
    email: EmailStr
    can_edit: bool = False


class ShareResponse(BaseModel):
    user_id: str
    email: str
    name: str
    role: str
    can_edit: bool


# =============================================================================
# Lifecycle
# =============================================================================


class DistributeRequest(BaseModel):
    """Optional body for POST /forms/{id}/distribute."""

    group_ids: list[str] | None = Field(None, max_length=100)


class DeliveryError(BaseModel):
    email: str
    error: str


class DistributeResponse(BaseModel):
    submissions_created: int
    emails_sent: list[str]
    errors: list[DeliveryError]


class BulkCloseRequest(BaseModel):
    form_ids: list[str] = Field(..., min_length=1, max_length=MAX_BULK_CLOSE)


class SkippedForm(BaseModel):
    form_id: str
    reason: str


class BulkCloseResponse(BaseModel):
    closed: list[str]
    skipped: list[SkippedForm]


class BulkRemindRequest(BaseModel):
    form_ids: list[str] = Field(..., min_length=1, max_length=MAX_BULK_REMIND)


class BulkRemindResponse(BaseModel):
    forms_processed: int
    total_sent: int
    total_errors: int
    skipped: list[SkippedForm] = Field(default_factory=list)


# =============================================================================
# Review
# =============================================================================


class SubmitForReviewRequest(BaseModel):
    review_needed_by: datetime | None = None
    is_expedited: bool = False


class ApproveRequest(BaseModel):
    comments: str | None = Field(None, max_length=2000)


class RequestRevisionRequest(BaseModel):
    # Emptiness is checked by the service so the error carries COMMENTS_REQUIRED
    comments: str | None = Field(None, max_length=2000)


class ReviewLogEntry(BaseModel):
    id: str
    action: ReviewAction
    comments: str | None = None
    reviewer_id: str | None = None
    reviewer_name: str | None = None
    created_at: datetime


class ReviewLogResponse(BaseModel):
    entries: list[ReviewLogEntry]


# =============================================================================
# Signing
# =============================================================================


class FieldAnswer(BaseModel):
    field_id: str = Field(..., min_length=1)
    response: str = Field(..., max_length=5000)


class SignRequest(BaseModel):
    """Request body for POST /forms/{id}/sign."""

    student_id: str = Field(..., min_length=1)
    signature_data: str = Field(..., min_length=1)
    field_responses: list[FieldAnswer] = Field(default_factory=list)


class SignResponse(BaseModel):
    submission_id: str
    status: SubmissionStatus
    signed_at: datetime


class SignViewStudent(BaseModel):
    id: str
    first_name: str
    last_name: str
    grade: str
    has_signed: bool


class SignViewResponse(BaseModel):
    form: FormResponse
    deadline: datetime
    students: list[SignViewStudent]

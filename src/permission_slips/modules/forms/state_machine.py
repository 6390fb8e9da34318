"""
Form State Machine

Two independent lifecycles live on a PermissionForm:

    status:         DRAFT -> ACTIVE -> CLOSED -> ACTIVE (re-open)
    review_status:  None -> PENDING_REVIEW -> APPROVED | REVISION_NEEDED
                    REVISION_NEEDED -> PENDING_REVIEW (re-submit)

Every change to either field goes through transition_form() or
transition_review(), which validate the move against the tables below
before touching the model. Guards that depend on more than the two states
(event date, reviewer school) are checked by the services.
"""

from permission_slips.modules.forms.models import FormStatus, PermissionForm, ReviewStatus

FORM_TRANSITIONS: dict[FormStatus, frozenset[FormStatus]] = {
    FormStatus.DRAFT: frozenset({FormStatus.ACTIVE}),
    FormStatus.ACTIVE: frozenset({FormStatus.CLOSED}),
    FormStatus.CLOSED: frozenset({FormStatus.ACTIVE}),
}

REVIEW_TRANSITIONS: dict[ReviewStatus | None, frozenset[ReviewStatus]] = {
    None: frozenset({ReviewStatus.PENDING_REVIEW}),
    ReviewStatus.PENDING_REVIEW: frozenset(
        {ReviewStatus.APPROVED, ReviewStatus.REVISION_NEEDED}
    ),
    # A reviewer may still approve, or add further revision notes, after
    # asking for changes; the teacher may re-submit.
    ReviewStatus.REVISION_NEEDED: frozenset(
        {
            ReviewStatus.PENDING_REVIEW,
            ReviewStatus.APPROVED,
            ReviewStatus.REVISION_NEEDED,
        }
    ),
    ReviewStatus.APPROVED: frozenset(),
}

# Review states a reviewer may act on
REVIEWABLE_STATES = frozenset({ReviewStatus.PENDING_REVIEW, ReviewStatus.REVISION_NEEDED})


class InvalidStatusTransitionError(ValueError):
    """Raised when a requested state change is not in the transition table."""

    def __init__(self, current, target, lifecycle: str = "status"):
        self.current = current
        self.target = target
        self.lifecycle = lifecycle
        current_name = current.value if current is not None else "None"
        super().__init__(
            f"Invalid {lifecycle} transition from {current_name} to {target.value}"
        )


def can_transition_form(current: FormStatus, target: FormStatus) -> bool:
    """Check a form status move against FORM_TRANSITIONS."""
    return target in FORM_TRANSITIONS.get(current, frozenset())


def can_transition_review(current: ReviewStatus | None, target: ReviewStatus) -> bool:
    """Check a review status move against REVIEW_TRANSITIONS."""
    return target in REVIEW_TRANSITIONS.get(current, frozenset())


def transition_form(form: PermissionForm, target: FormStatus) -> FormStatus:
    """
    Move a form to a new lifecycle status.

    Args:
        form: The form to update (mutated in place, not flushed)
        target: Requested status

    Returns:
        The previous status

    Raises:
        InvalidStatusTransitionError: If the move is not allowed
    """
    current = form.status
    if not can_transition_form(current, target):
        raise InvalidStatusTransitionError(current, target, "status")
    form.status = target
    return current


def transition_review(form: PermissionForm, target: ReviewStatus) -> ReviewStatus | None:
    """
    Move a form to a new review status.

    Returns:
        The previous review status

    Raises:
        InvalidStatusTransitionError: If the move is not allowed
    """
    current = form.review_status
    if not can_transition_review(current, target):
        raise InvalidStatusTransitionError(current, target, "review")
    form.review_status = target
    return current

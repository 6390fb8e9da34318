"""
Unit tests for form distribution.

These tests cover:
- One submission per (student, parent) pair and one email per parent
- DRAFT forms being activated
- Re-distribution creating nothing new
- Failure modes (no students, no linked parents, not approved, closed)
- Delivery failures reported without undoing the distribution
"""

from unittest.mock import AsyncMock, patch

import pytest
from factories import make_account, make_form, make_student

from permission_slips.core.email import DeliveryReport
from permission_slips.modules.audit import AuditAction
from permission_slips.modules.forms.distribution import distribute_form, group_by_parent
from permission_slips.modules.forms.exceptions import (
    FormClosedError,
    FormNotFoundError,
    NoStudentsInSchoolError,
    NoStudentsWithParentsError,
    ReviewNotApprovedError,
)
from permission_slips.modules.forms.models import FormStatus, ReviewStatus

MODULE = "permission_slips.modules.forms.distribution"


@pytest.fixture
def mock_repository():
    with patch(f"{MODULE}.repository") as repo:
        repo.get_form_for_update = AsyncMock()
        repo.insert_pending_submissions = AsyncMock(return_value=0)
        yield repo


@pytest.fixture
def mock_students():
    with patch(f"{MODULE}.students_repository") as repo:
        repo.get_linked_pairs = AsyncMock(return_value=[])
        repo.count_students = AsyncMock(return_value=0)
        yield repo


@pytest.fixture
def mock_send():
    async def _deliver_all(messages, batch_size=None):
        return DeliveryReport(
            sent=[m.to_email for m in messages], delivered=list(range(len(messages)))
        )

    with patch(f"{MODULE}.send_batched", side_effect=_deliver_all) as send:
        yield send


@pytest.fixture
def mock_record():
    with patch(f"{MODULE}.record", new_callable=AsyncMock) as rec:
        yield rec


@pytest.fixture
def family():
    """Two siblings sharing one parent, plus a second parent for the first child."""
    alice = make_student("Alice")
    bob = make_student("Bob")
    mom = make_account("Mom")
    dad = make_account("Dad")
    return alice, bob, mom, dad, [(alice, mom), (bob, mom), (alice, dad)]


class TestGroupByParent:
    def test_one_recipient_per_parent(self, family):
        alice, bob, mom, dad, pairs = family

        recipients = group_by_parent(pairs)

        assert [r.email for r in recipients] == [mom.email, dad.email]
        assert recipients[0].student_names == ["Alice Doe", "Bob Doe"]
        assert recipients[1].student_names == ["Alice Doe"]


class TestDistributeForm:
    """Tests for distribute_form."""

    @pytest.mark.asyncio
    async def test_siblings_get_one_email(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher, family
    ):
        alice, bob, mom, dad, pairs = family
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form
        mock_students.get_linked_pairs.return_value = pairs
        mock_repository.insert_pending_submissions.return_value = 3

        result = await distribute_form(mock_db, teacher, form.id)

        assert result.submissions_created == 3
        assert sorted(result.emails_sent) == sorted([mom.email, dad.email])
        assert result.errors == []
        assert form.status == FormStatus.ACTIVE
        mock_repository.insert_pending_submissions.assert_called_once_with(
            mock_db,
            form.id,
            [(mom.id, alice.id), (mom.id, bob.id), (dad.id, alice.id)],
        )
        mock_db.commit.assert_called_once()

        messages = mock_send.call_args.args[0]
        assert len(messages) == 2
        assert "Alice Doe, Bob Doe" in messages[0].html_content

    @pytest.mark.asyncio
    async def test_second_distribution_creates_nothing(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher, family
    ):
        *_, pairs = family
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_form_for_update.return_value = form
        mock_students.get_linked_pairs.return_value = pairs
        mock_repository.insert_pending_submissions.return_value = 0

        result = await distribute_form(mock_db, teacher, form.id)

        assert result.submissions_created == 0
        assert form.status == FormStatus.ACTIVE
        assert mock_record.call_args.kwargs["metadata"]["submissionsCreated"] == 0

    @pytest.mark.asyncio
    async def test_groups_are_passed_to_student_lookup(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher, family
    ):
        *_, pairs = family
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form
        mock_students.get_linked_pairs.return_value = pairs[:1]

        await distribute_form(mock_db, teacher, form.id, ["group-1"])

        mock_students.get_linked_pairs.assert_called_once_with(mock_db, form.school_id, ["group-1"])
        assert mock_record.call_args.kwargs["metadata"]["groupIds"] == ["group-1"]

    @pytest.mark.asyncio
    async def test_no_students_in_school(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher
    ):
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form
        mock_students.count_students.return_value = 0

        with pytest.raises(NoStudentsInSchoolError):
            await distribute_form(mock_db, teacher, form.id)

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()
        mock_send.assert_not_called()

    @pytest.mark.asyncio
    async def test_students_without_parents(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher
    ):
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form
        mock_students.count_students.return_value = 12

        with pytest.raises(NoStudentsWithParentsError) as exc_info:
            await distribute_form(mock_db, teacher, form.id)

        assert exc_info.value.error_code == "NO_STUDENTS_WITH_PARENTS"
        mock_repository.insert_pending_submissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_group_selection_in_populated_school(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher
    ):
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form
        mock_students.count_students.return_value = 30

        with pytest.raises(NoStudentsWithParentsError):
            await distribute_form(mock_db, teacher, form.id, ["empty-group"])

        mock_students.count_students.assert_called_once_with(mock_db, form.school_id)
        mock_db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_unapproved_review_blocks_distribution(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher
    ):
        form = make_form(teacher.id, requires_review=True, review_status=ReviewStatus.PENDING_REVIEW)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(ReviewNotApprovedError):
            await distribute_form(mock_db, teacher, form.id)

        assert form.status == FormStatus.DRAFT
        mock_students.get_linked_pairs.assert_not_called()

    @pytest.mark.asyncio
    async def test_approved_form_distributes(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher, family
    ):
        *_, pairs = family
        form = make_form(teacher.id, requires_review=True, review_status=ReviewStatus.APPROVED)
        mock_repository.get_form_for_update.return_value = form
        mock_students.get_linked_pairs.return_value = pairs

        await distribute_form(mock_db, teacher, form.id)

        assert form.status == FormStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_closed_form(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher
    ):
        form = make_form(teacher.id, status=FormStatus.CLOSED)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(FormClosedError):
            await distribute_form(mock_db, teacher, form.id)

    @pytest.mark.asyncio
    async def test_missing_form(
        self, mock_db, mock_repository, mock_students, mock_send, mock_record, teacher
    ):
        mock_repository.get_form_for_update.return_value = None

        with pytest.raises(FormNotFoundError):
            await distribute_form(mock_db, teacher, "missing")

    @pytest.mark.asyncio
    async def test_delivery_failure_is_reported(
        self, mock_db, mock_repository, mock_students, mock_record, teacher, family
    ):
        alice, bob, mom, dad, pairs = family
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form
        mock_students.get_linked_pairs.return_value = pairs
        mock_repository.insert_pending_submissions.return_value = 3
        report = DeliveryReport(
            sent=[mom.email], errors=[{"email": dad.email, "error": "mailbox full"}]
        )

        with patch(f"{MODULE}.send_batched", new_callable=AsyncMock, return_value=report):
            result = await distribute_form(mock_db, teacher, form.id)

        assert result.submissions_created == 3
        assert result.emails_sent == [mom.email]
        assert result.errors[0].email == dad.email
        assert result.errors[0].error == "mailbox full"
        mock_db.rollback.assert_not_called()
        assert mock_record.call_args.args[0] == AuditAction.FORM_DISTRIBUTE

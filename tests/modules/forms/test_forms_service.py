"""
Unit tests for the forms service layer.

These tests cover:
- Resource access helpers (owner, share, school admin, reviewer)
- Close, re-open and bulk close
- Update rules (DRAFT only content, date ordering, EDITED review log)
- Sharing checks
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from factories import OTHER_SCHOOL_ID, make_account, make_form

from permission_slips.modules.audit import AuditAction
from permission_slips.modules.forms import service
from permission_slips.modules.forms.exceptions import (
    CannotShareWithParentError,
    CannotShareWithSelfError,
    DeadlinePassedError,
    FormNotEditableError,
    FormNotFoundError,
    ForbiddenError,
    InvalidDatesError,
    InvalidFormStatusError,
    UserNotFoundError,
)
from permission_slips.modules.forms.models import FormShare, FormStatus, ReviewAction, ReviewStatus
from permission_slips.modules.forms.schemas import FormUpdate
from permission_slips.modules.users.models import UserRole


@pytest.fixture
def mock_repository():
    with patch("permission_slips.modules.forms.service.repository") as repo:
        repo.get_form = AsyncMock()
        repo.get_form_for_update = AsyncMock()
        repo.get_forms_for_update = AsyncMock(return_value=[])
        repo.get_share = AsyncMock(return_value=None)
        repo.replace_fields = AsyncMock()
        repo.add_review_log = AsyncMock()
        repo.upsert_share = AsyncMock()
        repo.delete_share = AsyncMock(return_value=True)
        repo.count_submissions_by_status = AsyncMock(return_value={})
        yield repo


@pytest.fixture
def mock_record():
    with patch("permission_slips.modules.forms.service.record", new_callable=AsyncMock) as rec:
        yield rec


def _share(can_edit: bool) -> MagicMock:
    share = MagicMock(spec=FormShare)
    share.can_edit = can_edit
    return share


class TestAccessHelpers:
    """Tests for who may read and modify a form."""

    def test_admin_of_same_school_is_school_admin(self, admin, teacher):
        form = make_form(teacher.id)
        assert service.is_school_admin(admin, form) is True

    def test_admin_of_other_school_is_not(self, other_school_admin, teacher):
        form = make_form(teacher.id)
        assert service.is_school_admin(other_school_admin, form) is False

    def test_super_admin_is_always_school_admin(self, super_admin, teacher):
        form = make_form(teacher.id, school_id=OTHER_SCHOOL_ID)
        assert service.is_school_admin(super_admin, form) is True

    @pytest.mark.asyncio
    async def test_view_only_share_cannot_mutate(self, mock_db, mock_repository, teacher, other_teacher):
        form = make_form(teacher.id)
        mock_repository.get_share.return_value = _share(can_edit=False)

        assert await service.can_mutate(mock_db, other_teacher, form) is False

    @pytest.mark.asyncio
    async def test_edit_share_can_mutate(self, mock_db, mock_repository, teacher, other_teacher):
        form = make_form(teacher.id)
        mock_repository.get_share.return_value = _share(can_edit=True)

        assert await service.can_mutate(mock_db, other_teacher, form) is True

    @pytest.mark.asyncio
    async def test_reviewer_of_same_school_can_read(self, mock_db, mock_repository, teacher, reviewer):
        form = make_form(teacher.id)

        await service.ensure_can_read(mock_db, reviewer, form)

        mock_repository.get_share.assert_not_called()

    @pytest.mark.asyncio
    async def test_stranger_cannot_read(self, mock_db, mock_repository, teacher, other_teacher):
        form = make_form(teacher.id)

        with pytest.raises(ForbiddenError):
            await service.ensure_can_read(mock_db, other_teacher, form)

    @pytest.mark.asyncio
    async def test_load_form_missing(self, mock_db, mock_repository):
        mock_repository.get_form.return_value = None

        with pytest.raises(FormNotFoundError) as exc_info:
            await service.load_form(mock_db, "missing")

        assert exc_info.value.status_code == 404


class TestCloseForm:
    """Tests for closing a form."""

    @pytest.mark.asyncio
    async def test_close_active_form(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_form_for_update.return_value = form

        result = await service.close_form(mock_db, teacher, form.id)

        assert result.status == FormStatus.CLOSED
        mock_db.commit.assert_called_once()
        mock_record.assert_called_once()
        assert mock_record.call_args.args[0] == AuditAction.FORM_CLOSED
        assert mock_record.call_args.kwargs["metadata"] == {
            "previousStatus": "ACTIVE",
            "newStatus": "CLOSED",
        }

    @pytest.mark.asyncio
    async def test_close_draft_is_rejected(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id, status=FormStatus.DRAFT)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(InvalidFormStatusError) as exc_info:
            await service.close_form(mock_db, teacher, form.id)

        assert exc_info.value.error_code == "INVALID_FORM_STATUS"
        assert form.status == FormStatus.DRAFT
        mock_db.rollback.assert_called_once()
        mock_record.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_by_stranger_is_forbidden(
        self, mock_db, mock_repository, mock_record, teacher, other_teacher
    ):
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(ForbiddenError):
            await service.close_form(mock_db, other_teacher, form.id)

        assert form.status == FormStatus.ACTIVE


class TestReopenForm:
    """Tests for re-opening a closed form."""

    @pytest.mark.asyncio
    async def test_reopen_closed_form(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id, status=FormStatus.CLOSED)
        mock_repository.get_form_for_update.return_value = form

        result = await service.reopen_form(mock_db, teacher, form.id)

        assert result.status == FormStatus.ACTIVE
        assert mock_record.call_args.args[0] == AuditAction.FORM_REOPENED

    @pytest.mark.asyncio
    async def test_reopen_after_event_date(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(
            teacher.id,
            status=FormStatus.CLOSED,
            event_date=datetime.now(UTC) - timedelta(days=1),
        )
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(DeadlinePassedError) as exc_info:
            await service.reopen_form(mock_db, teacher, form.id)

        assert exc_info.value.error_code == "EVENT_DATE_PASSED"
        assert form.status == FormStatus.CLOSED

    @pytest.mark.asyncio
    async def test_reopen_active_form(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(InvalidFormStatusError):
            await service.reopen_form(mock_db, teacher, form.id)

    @pytest.mark.asyncio
    async def test_status_checked_before_event_date(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        form = make_form(
            teacher.id,
            status=FormStatus.DRAFT,
            event_date=datetime.now(UTC) - timedelta(days=1),
        )
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(InvalidFormStatusError):
            await service.reopen_form(mock_db, teacher, form.id)


class TestBulkClose:
    """Tests for closing several forms at once."""

    @pytest.mark.asyncio
    async def test_closes_active_and_skips_the_rest(
        self, mock_db, mock_repository, mock_record, teacher, other_teacher
    ):
        active = make_form(teacher.id, status=FormStatus.ACTIVE)
        draft = make_form(teacher.id, status=FormStatus.DRAFT)
        foreign = make_form(other_teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_forms_for_update.return_value = [active, draft, foreign]

        result = await service.bulk_close(
            mock_db, teacher, [active.id, draft.id, foreign.id, "missing", active.id]
        )

        assert result.closed == [active.id]
        assert {(s.form_id, s.reason) for s in result.skipped} == {
            (draft.id, "NOT_ACTIVE"),
            (foreign.id, "FORBIDDEN"),
            ("missing", "NOT_FOUND"),
        }
        assert active.status == FormStatus.CLOSED
        assert foreign.status == FormStatus.ACTIVE
        mock_db.commit.assert_called_once()
        assert mock_record.call_count == 1

    @pytest.mark.asyncio
    async def test_nothing_to_close_does_not_commit(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        result = await service.bulk_close(mock_db, teacher, ["missing"])

        assert result.closed == []
        mock_db.commit.assert_not_called()


class TestUpdateForm:
    """Tests for editing a form."""

    @pytest.mark.asyncio
    async def test_update_draft_title(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form

        result = await service.update_form(mock_db, teacher, form.id, FormUpdate(title="Museum Trip"))

        assert result.title == "Museum Trip"
        mock_repository.add_review_log.assert_not_called()
        assert mock_record.call_args.kwargs["metadata"] == {"changedFields": ["title"]}

    @pytest.mark.asyncio
    async def test_content_of_active_form_is_locked(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(FormNotEditableError):
            await service.update_form(mock_db, teacher, form.id, FormUpdate(title="Changed"))

        assert form.title == "Zoo Trip"
        mock_db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_reminder_toggle_allowed_on_active_form(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_form_for_update.return_value = form

        await service.update_form(mock_db, teacher, form.id, FormUpdate(reminders_enabled=False))

        assert form.reminders_enabled is False

    @pytest.mark.asyncio
    async def test_deadline_after_event_date(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id)
        mock_repository.get_form_for_update.return_value = form

        with pytest.raises(InvalidDatesError):
            await service.update_form(
                mock_db,
                teacher,
                form.id,
                FormUpdate(deadline=form.event_date + timedelta(days=1)),
            )

    @pytest.mark.asyncio
    async def test_edit_during_review_is_logged(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        form = make_form(teacher.id, requires_review=True, review_status=ReviewStatus.REVISION_NEEDED)
        mock_repository.get_form_for_update.return_value = form

        await service.update_form(
            mock_db, teacher, form.id, FormUpdate(title="Fixed", description="Now with lunch")
        )

        mock_repository.add_review_log.assert_called_once()
        kwargs = mock_repository.add_review_log.call_args.kwargs
        assert kwargs["action"] == ReviewAction.EDITED
        assert kwargs["comments"] == "Edited: description, title"
        assert form.review_status == ReviewStatus.REVISION_NEEDED


class TestShareForm:
    """Tests for sharing a form with other staff."""

    @pytest.mark.asyncio
    async def test_share_with_colleague(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id)
        mock_repository.get_form.return_value = form
        colleague = make_account("Grace", "Hopper", role=UserRole.TEACHER)

        with patch(
            "permission_slips.modules.forms.service.UserRepository.get_by_email",
            new_callable=AsyncMock,
            return_value=colleague,
        ):
            result = await service.share_form(mock_db, teacher, form.id, colleague.email, True)

        assert result.user_id == colleague.id
        assert result.role == "TEACHER"
        assert result.can_edit is True
        mock_repository.upsert_share.assert_called_once_with(
            mock_db, form_id=form.id, user_id=colleague.id, can_edit=True
        )

    @pytest.mark.asyncio
    async def test_share_with_parent_is_rejected(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        form = make_form(teacher.id)
        mock_repository.get_form.return_value = form
        parent_account = make_account("Pat")

        with patch(
            "permission_slips.modules.forms.service.UserRepository.get_by_email",
            new_callable=AsyncMock,
            return_value=parent_account,
        ):
            with pytest.raises(CannotShareWithParentError):
                await service.share_form(mock_db, teacher, form.id, parent_account.email, False)

        mock_repository.upsert_share.assert_not_called()

    @pytest.mark.asyncio
    async def test_share_with_self_is_rejected(self, mock_db, mock_repository, mock_record, teacher):
        form = make_form(teacher.id)
        mock_repository.get_form.return_value = form
        me = make_account("Me", role=UserRole.TEACHER)
        me.id = teacher.id

        with patch(
            "permission_slips.modules.forms.service.UserRepository.get_by_email",
            new_callable=AsyncMock,
            return_value=me,
        ):
            with pytest.raises(CannotShareWithSelfError):
                await service.share_form(mock_db, teacher, form.id, teacher.email, False)

    @pytest.mark.asyncio
    async def test_share_with_other_school_looks_like_unknown_user(
        self, mock_db, mock_repository, mock_record, teacher
    ):
        form = make_form(teacher.id)
        mock_repository.get_form.return_value = form
        outsider = make_account("Out", "Sider", role=UserRole.TEACHER)
        outsider.school_id = OTHER_SCHOOL_ID

        with patch(
            "permission_slips.modules.forms.service.UserRepository.get_by_email",
            new_callable=AsyncMock,
            return_value=outsider,
        ):
            with pytest.raises(UserNotFoundError):
                await service.share_form(mock_db, teacher, form.id, outsider.email, False)

    @pytest.mark.asyncio
    async def test_only_owner_or_admin_may_share(
        self, mock_db, mock_repository, mock_record, teacher, other_teacher
    ):
        form = make_form(teacher.id)
        mock_repository.get_form.return_value = form

        with pytest.raises(ForbiddenError):
            await service.share_form(mock_db, other_teacher, form.id, "x@springfield.edu", False)

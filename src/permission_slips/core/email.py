"""
Email Service using Resend

Handles sending notification emails for the permission slip workflow:
permission requests to parents, signature confirmations, review
notifications and deadline reminders.

Sends are best-effort: helpers return a bool and never raise into callers.
Fan-out goes through send_batched(), which sends a bounded number of
messages concurrently and records the outcome of each one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from html import escape

import resend

from permission_slips.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key

# Configurations
EMAIL_FROM = settings.email_from
FRONTEND_URL = settings.frontend_url


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


# =============================================================================
# Batched delivery
# =============================================================================


@dataclass
class EmailMessage:
    """A fully rendered email waiting to be sent."""

    to_email: str
    subject: str
    html_content: str


@dataclass
class DeliveryReport:
    """Outcome of a batched send: who got mail and who did not (and why).

    `delivered` holds the positions (in the input list) of the messages that
    went out, so callers can tell apart two messages to the same address.
    """

    sent: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    delivered: list[int] = field(default_factory=list)


async def send_batched(
    messages: list[EmailMessage],
    batch_size: int | None = None,
) -> DeliveryReport:
    """
    Send messages in fixed-size batches, concurrently within each batch.

    A failure (False return or exception) for one recipient is captured in
    the report and never stops the remaining sends.

    Args:
        messages: Messages to send, in order
        batch_size: Maximum concurrent sends (defaults to settings.email_batch_size)

    Returns:
        DeliveryReport with sent addresses and {email, error} entries
    """
    size = max(1, batch_size or settings.email_batch_size)
    report = DeliveryReport()

    for start in range(0, len(messages), size):
        batch = messages[start : start + size]
        results = await asyncio.gather(
            *(send_email(m.to_email, m.subject, m.html_content) for m in batch),
            return_exceptions=True,
        )
        for offset, (message, result) in enumerate(zip(batch, results, strict=True)):
            if isinstance(result, BaseException):
                logger.error(f"Email to {message.to_email} raised: {result}")
                report.errors.append({"email": message.to_email, "error": str(result)})
            elif result:
                report.sent.append(message.to_email)
                report.delivered.append(start + offset)
            else:
                report.errors.append(
                    {"email": message.to_email, "error": "Email delivery failed"}
                )

    logger.info(f"Batched email: {len(report.sent)} sent, {len(report.errors)} failed")
    return report


# =============================================================================
# Templates
# =============================================================================


def _render(heading: str, body_html: str, button_url: str | None = None, button_label: str = "") -> str:
    button = f'<a href="{button_url}" class="button">{button_label}</a>' if button_url else ""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
            .header {{ color: #1a365d; margin-bottom: 24px; }}
            .button {{ display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }}
            .footer {{ margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>
            {body_html}
            {button}
            <div class="footer">
                <p>Permission Slips - Digital permission forms for schools</p>
            </div>
        </div>
    </body>
    </html>
    """


def _format_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y")


def build_permission_request(
    to_email: str,
    parent_name: str,
    form_title: str,
    student_names: list[str],
    deadline: datetime,
    form_id: str,
) -> EmailMessage:
    """Build the 'please sign' email sent to a parent on distribution."""
    safe_title = escape(form_title)
    safe_students = escape(", ".join(student_names))
    sign_url = f"{FRONTEND_URL}/forms/{form_id}/sign"

    body = f"""
            <p>Hello {escape(parent_name)},</p>
            <p>Your permission is requested for <strong>{safe_title}</strong> for: <strong>{safe_students}</strong>.</p>
            <p>Please review and sign the form before <strong>{_format_date(deadline)}</strong>.</p>
    """
    return EmailMessage(
        to_email=to_email,
        subject=f"Permission needed: {safe_title}",
        html_content=_render("Permission Slip", body, sign_url, "Review & Sign"),
    )


def build_deadline_reminder(
    to_email: str,
    parent_name: str,
    form_title: str,
    student_names: list[str],
    days_remaining: int,
    form_id: str,
) -> EmailMessage:
    """Build a reminder for a parent with unsigned submissions close to the deadline."""
    safe_title = escape(form_title)
    safe_students = escape(", ".join(student_names))
    sign_url = f"{FRONTEND_URL}/forms/{form_id}/sign"
    when = "today" if days_remaining <= 0 else f"in {days_remaining} day(s)"

    body = f"""
            <p>Hello {escape(parent_name)},</p>
            <p>The permission slip <strong>{safe_title}</strong> for <strong>{safe_students}</strong> is still waiting for your signature.</p>
            <p><strong>The deadline is {when}.</strong></p>
    """
    return EmailMessage(
        to_email=to_email,
        subject=f"Reminder: {safe_title} needs your signature",
        html_content=_render("Signature Reminder", body, sign_url, "Sign Now"),
    )


async def send_signature_confirmation(
    to_email: str,
    parent_name: str,
    form_title: str,
    student_name: str,
    submission_id: str,
) -> bool:
    """Confirm a signature to the parent, with a link to the signed PDF."""
    safe_title = escape(form_title)
    pdf_url = f"{FRONTEND_URL}/submissions/{submission_id}/pdf"

    body = f"""
            <p>Hello {escape(parent_name)},</p>
            <p>Thank you. Your signature for <strong>{safe_title}</strong> on behalf of <strong>{escape(student_name)}</strong> has been recorded.</p>
            <p>You can download a copy of the signed form at any time.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Signed: {safe_title}",
        html_content=_render("Signature Received", body, pdf_url, "Download PDF"),
    )


def build_review_requested(
    to_email: str,
    reviewer_name: str,
    form_title: str,
    teacher_name: str,
    form_id: str,
    review_needed_by: datetime | None = None,
    is_expedited: bool = False,
) -> EmailMessage:
    """Build the notification sent to a school's reviewers on submit-for-review."""
    safe_title = escape(form_title)
    review_url = f"{FRONTEND_URL}/forms/{form_id}/review"
    urgency = "<p><strong>This review has been marked as expedited.</strong></p>" if is_expedited else ""
    needed_by = (
        f"<p>Please review by <strong>{_format_date(review_needed_by)}</strong>.</p>"
        if review_needed_by
        else ""
    )

    body = f"""
            <p>Hello {escape(reviewer_name)},</p>
            <p>{escape(teacher_name)} has submitted <strong>{safe_title}</strong> for review.</p>
            {urgency}
            {needed_by}
    """
    prefix = "[Expedited] " if is_expedited else ""
    return EmailMessage(
        to_email=to_email,
        subject=f"{prefix}Review requested: {safe_title}",
        html_content=_render("Review Requested", body, review_url, "Review Form"),
    )


async def send_revision_requested(
    to_email: str,
    teacher_name: str,
    form_title: str,
    comments: str,
    form_id: str,
) -> bool:
    """Tell the form's teacher that the reviewer asked for changes."""
    safe_title = escape(form_title)
    edit_url = f"{FRONTEND_URL}/forms/{form_id}/edit"

    body = f"""
            <p>Hello {escape(teacher_name)},</p>
            <p>A reviewer has requested changes to <strong>{safe_title}</strong>:</p>
            <div style="background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0;">
                <p style="margin: 0;">{escape(comments)}</p>
            </div>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Revision requested: {safe_title}",
        html_content=_render("Revision Requested", body, edit_url, "Edit Form"),
    )


async def send_invite(
    to_email: str,
    token: str,
    role: str,
    inviter_name: str,
    school_name: str | None = None,
    expiry_days: int = 7,
) -> bool:
    """Send an account invitation with the single-use accept link."""
    invite_url = f"{FRONTEND_URL}/invite/{token}"
    role_display = role.replace("_", " ").lower()
    school_text = f" at {escape(school_name)}" if school_name else ""

    body = f"""
            <p>Hello,</p>
            <p>{escape(inviter_name)} has invited you to join Permission Slips as a
            <strong>{escape(role_display)}</strong>{school_text}.</p>
            <p style="color: #6b7280; font-size: 14px;">This invitation expires in {expiry_days} days.
            If you didn't expect it, you can safely ignore this email.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"You're invited to join Permission Slips{school_text}",
        html_content=_render("You're Invited", body, invite_url, "Accept Invitation"),
    )

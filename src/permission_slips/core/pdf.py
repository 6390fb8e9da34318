"""
Signed Permission Slip PDF

Renders a signed submission to PDF bytes with reportlab. Pure function of
its input: no database or network access.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from html import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

logger = logging.getLogger(__name__)

PRIMARY = colors.HexColor("#1e3a5f")
LIGHT_GRAY = colors.HexColor("#d1d5db")
TEXT = colors.HexColor("#333333")

_DATA_URL_RE = re.compile(r"^data:image/(?:png|jpe?g);base64,(?P<payload>.+)$", re.DOTALL)


@dataclass
class PermissionPdfData:
    form_title: str
    form_description: str
    event_date: datetime
    event_type: str
    deadline: datetime
    teacher_name: str
    student_name: str
    student_grade: str
    parent_name: str
    parent_email: str
    signature_data: str
    signed_at: datetime
    school_name: str | None = None
    ip_address: str | None = None
    field_responses: list[tuple[str, str]] = field(default_factory=list)


def build_pdf_filename(form_title: str, student_name: str) -> str:
    """
    Download filename for a signed slip.

    Non-alphanumerics become "-" (runs collapsed) and the title part is
    capped at 30 characters.
    """
    title = re.sub(r"-+", "-", re.sub(r"[^a-zA-Z0-9]", "-", form_title))[:30]
    student = re.sub(r"[^a-zA-Z0-9]", "-", student_name)
    return f"permission-{title}-{student}.pdf"


def _signature_flowable(signature_data: str, style: ParagraphStyle):
    match = _DATA_URL_RE.match(signature_data or "")
    if match:
        try:
            raw = base64.b64decode(match.group("payload"), validate=True)
            return Image(io.BytesIO(raw), width=2.5 * inch, height=0.9 * inch, kind="proportional")
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Could not decode signature image: {e}")
    return Paragraph("<i>[Signature on file]</i>", style)


def _fmt(value: datetime) -> str:
    return value.strftime("%B %d, %Y")


def render_permission_pdf(data: PermissionPdfData) -> bytes:
    """
    Render a signed permission slip.

    Returns:
        PDF document bytes
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f"Permission Slip - {data.form_title}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "SlipTitle",
        parent=styles["Normal"],
        fontSize=20,
        textColor=PRIMARY,
        fontName="Helvetica-Bold",
        alignment=TA_CENTER,
        spaceAfter=6,
    )
    subtitle_style = ParagraphStyle(
        "SlipSubtitle",
        parent=styles["Normal"],
        fontSize=11,
        textColor=colors.gray,
        alignment=TA_CENTER,
        spaceAfter=12,
    )
    section_style = ParagraphStyle(
        "SlipSection",
        parent=styles["Normal"],
        fontSize=11,
        textColor=PRIMARY,
        fontName="Helvetica-Bold",
        spaceBefore=14,
        spaceAfter=4,
    )
    body_style = ParagraphStyle(
        "SlipBody",
        parent=styles["Normal"],
        fontSize=10,
        textColor=TEXT,
        leading=14,
        spaceAfter=6,
    )

    def detail_table(rows: list[list[str]]) -> Table:
        table = Table(
            [[Paragraph(f"<b>{escape(k)}</b>", body_style), Paragraph(escape(v), body_style)] for k, v in rows],
            colWidths=[1.8 * inch, 5.2 * inch],
        )
        table.setStyle(
            TableStyle(
                [
                    ("GRID", (0, 0), (-1, -1), 0.5, LIGHT_GRAY),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("TOPPADDING", (0, 0), (-1, -1), 4),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ]
            )
        )
        return table

    elements: list = [Paragraph("PERMISSION SLIP", title_style)]
    if data.school_name:
        elements.append(Paragraph(escape(data.school_name), subtitle_style))

    elements.append(Paragraph(escape(data.form_title), section_style))
    elements.append(
        detail_table(
            [
                ["Event Date", _fmt(data.event_date)],
                ["Event Type", data.event_type.replace("_", " ").title()],
                ["Deadline", _fmt(data.deadline)],
                ["Teacher", data.teacher_name],
            ]
        )
    )

    elements.append(Paragraph("Event Description", section_style))
    elements.append(Paragraph(escape(data.form_description), body_style))

    if data.field_responses:
        elements.append(Paragraph("Additional Information", section_style))
        elements.append(detail_table([[label, response] for label, response in data.field_responses]))

    elements.append(Paragraph("Student Information", section_style))
    elements.append(
        detail_table([["Student Name", data.student_name], ["Grade", data.student_grade]])
    )

    elements.append(Spacer(1, 0.2 * inch))
    elements.append(HRFlowable(width="100%", thickness=1.5, color=PRIMARY))
    elements.append(Paragraph("Parent/Guardian Authorization", section_style))
    elements.append(
        Paragraph(
            f"I, the undersigned parent/guardian of {escape(data.student_name)}, hereby grant "
            "permission for my child to participate in the above-described activity. I understand "
            "and accept all terms and conditions associated with this activity.",
            body_style,
        )
    )
    elements.append(Paragraph("<b>Electronic Signature:</b>", body_style))
    elements.append(_signature_flowable(data.signature_data, body_style))
    elements.append(Spacer(1, 0.1 * inch))

    signer_rows = [
        ["Parent/Guardian", data.parent_name],
        ["Email", data.parent_email],
        ["Signed At", data.signed_at.strftime("%B %d, %Y at %H:%M UTC")],
    ]
    if data.ip_address:
        signer_rows.append(["IP Address", data.ip_address])
    elements.append(detail_table(signer_rows))

    doc.build(elements)
    return buffer.getvalue()

"""
Unit tests for the signed permission slip PDF.
"""

from datetime import UTC, datetime

from permission_slips.core.pdf import PermissionPdfData, build_pdf_filename, render_permission_pdf


def _data(**overrides) -> PermissionPdfData:
    values = {
        "form_title": "Zoo Trip",
        "form_description": "A day at the <city> zoo.",
        "event_date": datetime(2026, 5, 20, tzinfo=UTC),
        "event_type": "FIELD_TRIP",
        "deadline": datetime(2026, 5, 10, tzinfo=UTC),
        "teacher_name": "Ms. Frizzle",
        "student_name": "Alice Doe",
        "student_grade": "3",
        "parent_name": "Mom Doe",
        "parent_email": "mom@family.example.com",
        "signature_data": "Mom Doe",
        "signed_at": datetime(2026, 5, 2, 9, 30, tzinfo=UTC),
    }
    values.update(overrides)
    return PermissionPdfData(**values)


class TestFilename:
    def test_non_alphanumerics_become_dashes(self):
        assert (
            build_pdf_filename("Zoo Trip: Day 1!!", "Alice O'Neil")
            == "permission-Zoo-Trip-Day-1--Alice-O-Neil.pdf"
        )

    def test_title_is_capped(self):
        name = build_pdf_filename("A" * 50, "Bob")
        assert name == f"permission-{'A' * 30}-Bob.pdf"


class TestRender:
    def test_produces_pdf_bytes(self):
        content = render_permission_pdf(_data())

        assert content.startswith(b"%PDF")

    def test_extra_fields_and_school(self):
        content = render_permission_pdf(
            _data(
                school_name="Springfield Elementary",
                ip_address="203.0.113.7",
                field_responses=[("Allergies", "Peanuts"), ("Emergency contact", "555-0100")],
            )
        )

        assert content.startswith(b"%PDF")

    def test_invalid_signature_image_falls_back(self):
        content = render_permission_pdf(_data(signature_data="data:image/png;base64,!!!notbase64"))

        assert content.startswith(b"%PDF")

"""
Forms Module

Permission forms from authoring to signature:
1. Teachers author DRAFT forms with custom fields and share them with colleagues
2. Forms that require review go through a reviewer before distribution
3. Distribution activates the form and creates one PENDING submission per
   (parent, student), emailing each parent once
4. Parents sign per student, exactly once; signed slips download as PDF
5. Teachers close and re-open forms, individually or in bulk

API Endpoints:
- /forms/... - Authoring, sharing, lifecycle, review and signing
- GET /submissions/{id}/pdf - Signed permission slip

Background Jobs (via APScheduler):
- send_deadline_reminders: Runs hourly, reminds parents of deadlines
  within the reminder window
"""

from .jobs import register_form_jobs
from .router import router
from .submissions_router import router as submissions_router

__all__ = ["router", "submissions_router", "register_form_jobs"]

"""
Invites Module

Single-use account invitations for staff:
1. An admin invites an email with a role for a school
2. The invitee opens the emailed link and sets their name and password
3. Acceptance creates the account in one transaction with its audit row

API Endpoints:
- POST /invites - Create invite (admins)
- GET /invites/{token} - Public invite details
- POST /invites/{token}/accept - Accept invite
"""

from .models import Invite
from .router import router

__all__ = ["Invite", "router"]

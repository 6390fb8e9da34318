"""Authentication module - login and refresh issue JWTs for every role."""

from permission_slips.modules.auth.router import router

__all__ = ["router"]

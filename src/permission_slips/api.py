from fastapi import APIRouter

from permission_slips.modules.auth import router as auth_router
from permission_slips.modules.forms import router as forms_router
from permission_slips.modules.forms import submissions_router
from permission_slips.modules.invites import router as invites_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(forms_router, prefix="/forms", tags=["Forms"])

api_router.include_router(submissions_router, prefix="/submissions", tags=["Submissions"])

api_router.include_router(invites_router, prefix="/invites", tags=["Invites"])

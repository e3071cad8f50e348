"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from guestgate.api.v1 import auth, invite_access, invites, organizations

router = APIRouter()

# =============================================================================
# Staff authentication
# =============================================================================

router.include_router(auth.router, prefix="/auth", tags=["auth"])

# =============================================================================
# Organizations and invite management
# =============================================================================

router.include_router(organizations.router, prefix="/orgs", tags=["organizations"])
router.include_router(
    invites.project_invites_router, prefix="/projects", tags=["invites"]
)
router.include_router(invites.router, prefix="/invites", tags=["invites"])

# =============================================================================
# Guest access (public)
# =============================================================================

router.include_router(
    invite_access.router, prefix="/invite-access", tags=["invite-access"]
)

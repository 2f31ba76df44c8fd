"""Bearer-token authentication against the managed backend.

Three facades mirror the three kinds of signed-in user:
- customers: any valid session (get_current_user)
- admins: a row in `admins` (require_admin)
- staff: an active row in `crm_staff`, plus the CRM sheets granted to them
  through `crm_sheet_access` (require_staff)
"""

from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ghardaar.backend.base import AuthUser, Backend, BackendError
from ghardaar.backend.factory import get_backend
from ghardaar.logging.audit import get_audit_logger

bearer_scheme = HTTPBearer(auto_error=False)


def require_backend() -> Backend:
    """FastAPI dependency: the service-role backend, or 500 when unconfigured."""
    backend = get_backend()
    if backend is None:
        raise HTTPException(status_code=500, detail="Service role key not configured")
    return backend


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    backend: Backend = Depends(require_backend),
) -> AuthUser:
    """FastAPI dependency that resolves the caller's access token to a user."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    user = await backend.get_user(credentials.credentials)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


async def require_admin(
    user: AuthUser = Depends(get_current_user),
    backend: Backend = Depends(require_backend),
) -> AuthUser:
    try:
        admin = await backend.select_one("admins", {"id": user.id}, columns="id")
    except BackendError as e:
        get_audit_logger().warning(
            "Admin check failed",
            extra={"audit_data": {"user_id": user.id, "error": e.message}},
        )
        admin = None

    if admin is None:
        raise HTTPException(status_code=403, detail="Unauthorized: Admin access required")
    return user


@dataclass
class StaffSession:
    user: AuthUser
    profile: dict
    sheet_ids: list[str] = field(default_factory=list)

    def can_access(self, sheet_id: str | None) -> bool:
        return sheet_id is not None and sheet_id in self.sheet_ids


async def require_staff(
    user: AuthUser = Depends(get_current_user),
    backend: Backend = Depends(require_backend),
) -> StaffSession:
    logger = get_audit_logger()
    try:
        profile = await backend.select_one("crm_staff", {"id": user.id, "is_active": True})
    except BackendError as e:
        logger.warning(
            "Staff profile lookup failed",
            extra={"audit_data": {"user_id": user.id, "error": e.message}},
        )
        profile = None

    if profile is None:
        raise HTTPException(status_code=403, detail="This account is not authorized as staff.")

    try:
        access = await backend.select("crm_sheet_access", {"staff_id": user.id}, columns="id, sheet_id")
    except BackendError as e:
        logger.error(
            "Error fetching accessible sheets",
            extra={"audit_data": {"user_id": user.id, "error": e.message}},
        )
        access = []

    return StaffSession(user=user, profile=profile, sheet_ids=[a["sheet_id"] for a in access])

"""
api/routes/v1/users.py -- Profile self-service and user administration endpoints.

Routes:
  PATCH /api/v1/profile                 -- update own name/department/location
  POST  /api/v1/profile/password        -- change own password
  GET   /api/v1/admin/users             -- list users (director and above)
  PATCH /api/v1/admin/users/{email}     -- set role and/or active flag (executive only)

Role checks go through require_role(), which ranks roles staff < manager <
director < executive; a role outside that ladder is never admitted.

Security:
  [M4] PATCH /admin/users/{email} refuses to deactivate or demote the caller's
       own account, so an executive cannot lock themselves out mid-request.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import AdminUserPatch, MessageResponse, PasswordChange, ProfileUpdate, UserResponse
from auth.dependencies import get_auth_service, get_current_user, require_role
from auth.errors import ValidationError
from auth.models import Role, UserSummary, canonical_email
from auth.service import AuthService

# Auth policy:
# - PATCH /api/v1/profile:                requires session (get_current_user)
# - POST  /api/v1/profile/password:       requires session (get_current_user)
# - GET   /api/v1/admin/users:            requires director or higher
# - PATCH /api/v1/admin/users/{email}:    requires executive
router = APIRouter()


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.patch("/profile", response_model=UserResponse)
def update_profile(
    body: ProfileUpdate,
    current_user: UserSummary = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    user = service.update_profile(current_user.email, body.name, body.department, body.location)
    return UserResponse.from_summary(user)


@router.post("/profile/password", response_model=MessageResponse)
def change_password(
    body: PasswordChange,
    current_user: UserSummary = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Re-verify the current password, then set the new one (strong policy)."""
    service.change_password(current_user.email, body.current_password, body.new_password, body.confirm_password)
    return MessageResponse(message="Password changed successfully.")


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(
    _user: UserSummary = Depends(require_role(Role.DIRECTOR)),
    service: AuthService = Depends(get_auth_service),
) -> list[UserResponse]:
    return [UserResponse.from_summary(u) for u in service.list_users()]


@router.patch("/admin/users/{email}", response_model=UserResponse)
def patch_user(
    email: str,
    body: AdminUserPatch,
    current_user: UserSummary = Depends(require_role(Role.EXECUTIVE)),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Apply role and/or active-flag changes. Deactivation ends the user's sessions."""
    if body.role is None and body.is_active is None:
        raise ValidationError("Provide role and/or is_active.")
    if canonical_email(email) == current_user.email:  # [M4]
        if body.is_active is False:
            raise ValidationError("You cannot deactivate your own account.", field="is_active")
        if body.role is not None and Role.parse(body.role) is not Role.EXECUTIVE:
            raise ValidationError("You cannot change your own role.", field="role")

    user = None
    if body.role is not None:
        user = service.update_role(email, body.role)
    if body.is_active is not None:
        user = service.set_active(email, body.is_active)
    return UserResponse.from_summary(user)

# app/routers/users.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_auth, require_admin
from app.database import get_session
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import (
    ProfileCompletion,
    ProfileUpdate,
    Role,
    RoleAssignment,
    UserRead,
)
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])

repo = UserRepository()
service = UserService(repo)


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(require_auth)):
    """
    Profile of the caller. The row is provisioned on the first
    authenticated request.
    """
    return current_user


@router.post("/me", response_model=UserRead)
def complete_profile(
    payload: ProfileCompletion,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    First-time profile completion: set the display name.
    """
    return service.complete_profile(session, current_user, payload)


@router.patch("/me", response_model=UserRead)
def update_me(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    return service.update_profile(session, current_user, payload)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[UserRead],
    dependencies=[Depends(require_admin)],
)
def list_users(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    role: Role | None = None,
):
    """
    List accounts (admin only). `role=baker` lists the kitchen staff.
    """
    return service.list_users(session, skip=skip, limit=limit, role=role)


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_admin)],
)
def get_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_user(session, user_id)


@router.patch("/{user_id}/role", response_model=UserRead)
def change_role(
    user_id: uuid.UUID,
    payload: RoleAssignment,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    Assign user | baker | admin (admin only).
    """
    return service.assign_role(session, user_id, payload, admin)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    service.delete_user(session, user_id, admin)
    return None

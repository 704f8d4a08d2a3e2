# app/services/user_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import ProfileCompletion, ProfileUpdate, RoleAssignment

logger = logging.getLogger(__name__)


class UserService:
    """
    Profile and account-management rules.

      - the email mirrors the identity provider and never changes here
      - an admin cannot change their own role or delete themselves,
        so the shop always keeps at least the acting admin
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    # ----- Self profile -----

    def complete_profile(
        self,
        session: Session,
        current_user: User,
        payload: ProfileCompletion,
    ) -> User:
        if payload.email and payload.email.lower() != current_user.email.lower():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email cannot be changed",
            )
        if payload.name is not None:
            current_user.name = payload.name
        return self.repo.save(session, current_user)

    def update_profile(
        self,
        session: Session,
        current_user: User,
        payload: ProfileUpdate,
    ) -> User:
        if payload.name is not None:
            current_user.name = payload.name
        return self.repo.save(session, current_user)

    # ----- Admin operations -----

    def list_users(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        role: str | None = None,
    ) -> list[User]:
        return self.repo.list_users(session, skip=skip, limit=limit, role=role)

    def get_user(self, session: Session, user_id: uuid.UUID) -> User:
        user = self.repo.get_by_id(session, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    def assign_role(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: RoleAssignment,
        acting_admin: User,
    ) -> User:
        if user_id == acting_admin.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Admins cannot change their own role",
            )
        user = self.get_user(session, user_id)
        if user.role != payload.role:
            logger.info("Role of %s changed %s -> %s", user.email, user.role, payload.role)
            user.role = payload.role
            user = self.repo.save(session, user)
        return user

    def delete_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        acting_admin: User,
    ) -> None:
        if user_id == acting_admin.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Admins cannot delete themselves",
            )
        user = self.get_user(session, user_id)
        self.repo.delete(session, user)

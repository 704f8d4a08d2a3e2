# app/services/cake_service.py
import re
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.cake import Cake
from app.models.user import User
from app.repositories.cake_repo import CakeRepository
from app.schemas.cake import CakeCreate, CakeUpdate
from app.schemas.cart import CakeSize


class CakeService:
    """
    Business logic for the cake catalog.

    Responsibilities:
      - slug generation & uniqueness
      - ownership rules (bakers manage their own listings, admins manage all)
      - size lookup for the cart
    """

    def __init__(self, repo: CakeRepository):
        self.repo = repo

    # ----- Helpers -----

    @staticmethod
    def _slugify(raw: str) -> str:
        """
        Basic slugification:
          - lowercase
          - non-alphanumeric -> '-'
          - collapse multiple '-'
          - strip leading/trailing '-'
        """
        value = raw.strip().lower()
        value = re.sub(r"[^a-z0-9]+", "-", value)
        value = re.sub(r"-+", "-", value)
        value = value.strip("-")
        return value or "cake"

    def _ensure_unique_slug(self, session: Session, base_slug: str) -> str:
        """
        Ensure slug is unique by appending -2, -3, ... if needed.
        """
        slug = base_slug
        i = 2
        while self.repo.get_by_slug(session, slug) is not None:
            slug = f"{base_slug}-{i}"
            i += 1
        return slug

    @staticmethod
    def _ensure_can_manage(cake: Cake, user: User) -> None:
        if user.role == "admin":
            return
        if cake.baker_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only manage your own cakes",
            )

    # ----- Queries -----

    def list_cakes(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        only_available: bool = True,
        category: str | None = None,
        featured: bool | None = None,
        search: str | None = None,
    ) -> list[Cake]:
        search = search.strip() if search else None
        return self.repo.list_cakes(
            session,
            skip=skip,
            limit=limit,
            only_available=only_available,
            category=category,
            featured=featured,
            search=search or None,
        )

    def list_for_baker(self, session: Session, baker: User) -> list[Cake]:
        return self.repo.list_for_baker(session, baker.id)

    def get_cake(self, session: Session, cake_id: uuid.UUID) -> Cake:
        cake = self.repo.get_by_id(session, cake_id)
        if not cake:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cake not found",
            )
        return cake

    def get_orderable_cake(self, session: Session, cake_id: uuid.UUID) -> Cake:
        """
        Cake that can go into a cart or an order right now.

        Raises:
            HTTPException(404): unknown cake
            HTTPException(400): cake is not available
        """
        cake = self.get_cake(session, cake_id)
        if not cake.is_available:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cake is not available",
            )
        return cake

    @staticmethod
    def offered_size(cake: Cake, label: str) -> CakeSize | None:
        for raw in cake.sizes or []:
            size = CakeSize.model_validate(raw)
            if size.label == label:
                return size
        return None

    def find_size(self, cake: Cake, label: str) -> CakeSize:
        size = self.offered_size(cake, label)
        if size is not None:
            return size
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Size '{label}' is not offered for this cake",
        )

    # ----- Commands -----

    def create_cake(self, session: Session, payload: CakeCreate, creator: User) -> Cake:
        """
        Create a new cake with a unique slug.

        Bakers always own what they create; admins may assign a baker.
        """
        base_slug = self._slugify(payload.slug or payload.name)
        slug = self._ensure_unique_slug(session, base_slug)

        baker_id = payload.baker_id if creator.role == "admin" else creator.id

        cake = Cake(
            name=payload.name,
            slug=slug,
            category=payload.category,
            description=payload.description,
            price=payload.price,
            images=list(payload.images),
            is_available=payload.is_available,
            featured=payload.featured if creator.role == "admin" else False,
            baker_id=baker_id,
            ingredients=list(payload.ingredients),
            allergens=list(payload.allergens),
            sizes=[s.model_dump() for s in payload.sizes],
        )
        return self.repo.create(session, cake)

    def update_cake(
        self,
        session: Session,
        cake_id: uuid.UUID,
        payload: CakeUpdate,
        editor: User,
    ) -> Cake:
        """
        Partial update of a cake.

        - If slug is changed, enforce uniqueness.
        - Only admins can change `featured`.
        """
        cake = self.get_cake(session, cake_id)
        self._ensure_can_manage(cake, editor)

        if payload.featured is not None and editor.role != "admin":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admins can feature cakes",
            )

        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        if "slug" in changes:
            new_base_slug = self._slugify(changes.pop("slug"))
            if new_base_slug != cake.slug:
                cake.slug = self._ensure_unique_slug(session, new_base_slug)

        for field, value in changes.items():
            # lists are re-assigned so JSON columns are flagged dirty
            setattr(cake, field, list(value) if isinstance(value, list) else value)

        cake.updated_at = datetime.now(timezone.utc)
        return self.repo.update(session, cake)

    def delete_cake(self, session: Session, cake_id: uuid.UUID, editor: User) -> None:
        cake = self.get_cake(session, cake_id)
        self._ensure_can_manage(cake, editor)
        self.repo.delete(session, cake)

    def toggle_availability(self, session: Session, cake_id: uuid.UUID, editor: User) -> Cake:
        cake = self.get_cake(session, cake_id)
        self._ensure_can_manage(cake, editor)
        cake.is_available = not cake.is_available
        cake.updated_at = datetime.now(timezone.utc)
        return self.repo.update(session, cake)

    def toggle_featured(self, session: Session, cake_id: uuid.UUID) -> Cake:
        cake = self.get_cake(session, cake_id)
        cake.featured = not cake.featured
        cake.updated_at = datetime.now(timezone.utc)
        return self.repo.update(session, cake)

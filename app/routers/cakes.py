# app/routers/cakes.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_admin, require_baker
from app.database import get_session
from app.models.user import User
from app.repositories.cake_repo import CakeRepository
from app.schemas.cake import CakeCategory, CakeCreate, CakeRead, CakeUpdate
from app.services.cake_service import CakeService

router = APIRouter(prefix="/cakes", tags=["Cakes"])

repo = CakeRepository()
service = CakeService(repo)


# -------- Public endpoints --------


@router.get("", response_model=list[CakeRead])
def list_cakes(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    only_available: bool = True,
    category: CakeCategory | None = None,
    featured: bool | None = None,
    q: str | None = None,
):
    """
    Browse the catalog.

    - `only_available=True` hides unavailable cakes by default.
    - `q` searches name and description (case-insensitive).
    """
    return service.list_cakes(
        session,
        skip=skip,
        limit=limit,
        only_available=only_available,
        category=category,
        featured=featured,
        search=q,
    )


# Declared before /{cake_id} so "mine" is not parsed as an id.
@router.get("/mine", response_model=list[CakeRead])
def list_my_cakes(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    """
    Cakes owned by the calling baker.
    """
    return service.list_for_baker(session, current_user)


@router.get("/{cake_id}", response_model=CakeRead)
def get_cake(
    cake_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_cake(session, cake_id)


# -------- Baker / admin endpoints --------


@router.post("", response_model=CakeRead, status_code=status.HTTP_201_CREATED)
def create_cake(
    payload: CakeCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    """
    Create a cake listing (baker or admin).
    """
    return service.create_cake(session, payload, current_user)


@router.patch("/{cake_id}", response_model=CakeRead)
def update_cake(
    cake_id: uuid.UUID,
    payload: CakeUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    """
    Update a cake. Bakers can only edit their own listings.
    """
    return service.update_cake(session, cake_id, payload, current_user)


@router.delete("/{cake_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_cake(
    cake_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    service.delete_cake(session, cake_id, current_user)
    return None


@router.post("/{cake_id}/toggle-availability", response_model=CakeRead)
def toggle_availability(
    cake_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    return service.toggle_availability(session, cake_id, current_user)


@router.post(
    "/{cake_id}/toggle-featured",
    response_model=CakeRead,
    dependencies=[Depends(require_admin)],
)
def toggle_featured(
    cake_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Feature / unfeature a cake on the storefront (admin only).
    """
    return service.toggle_featured(session, cake_id)

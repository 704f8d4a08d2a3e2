# app/repositories/cake_repo.py
import uuid

from sqlalchemy import func, or_
from sqlmodel import Session, select

from app.models.cake import Cake


class CakeRepository:
    """
    Data access layer for Cake.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    """

    def get_by_id(self, session: Session, cake_id: uuid.UUID) -> Cake | None:
        return session.get(Cake, cake_id)

    def get_by_slug(self, session: Session, slug: str) -> Cake | None:
        stmt = select(Cake).where(Cake.slug == slug)
        return session.exec(stmt).first()

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
        stmt = select(Cake)
        if only_available:
            stmt = stmt.where(Cake.is_available == True)  # noqa: E712
        if category:
            stmt = stmt.where(Cake.category == category)
        if featured is not None:
            stmt = stmt.where(Cake.featured == featured)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Cake.name).like(pattern),
                    func.lower(Cake.description).like(pattern),
                )
            )
        stmt = stmt.order_by(Cake.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_for_baker(self, session: Session, baker_id: uuid.UUID) -> list[Cake]:
        stmt = (
            select(Cake)
            .where(Cake.baker_id == baker_id)
            .order_by(Cake.created_at.desc())
        )
        return list(session.exec(stmt).all())

    def create(self, session: Session, cake: Cake) -> Cake:
        session.add(cake)
        session.commit()
        session.refresh(cake)
        return cake

    def update(self, session: Session, cake: Cake) -> Cake:
        session.add(cake)
        session.commit()
        session.refresh(cake)
        return cake

    def delete(self, session: Session, cake: Cake) -> None:
        session.delete(cake)
        session.commit()

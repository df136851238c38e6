from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from estoque.auditoria import LogDetails, details_to_dict
from estoque.errors import BulkInsertError
from estoque.models import Product, User, UserLog, utcnow
from estoque.tipos_importacao import ProdutoImportado

logger = logging.getLogger(__name__)


class ProductRepo:
    def __init__(self, session: Session):
        self.session = session

    def insert_many(self, products: Iterable[ProdutoImportado]) -> int:
        """Insert every candidate in one flush; all-or-nothing."""

        now = utcnow()
        rows = [
            Product(
                name=p.name,
                description=p.description,
                category=p.category,
                weight=p.weight,
                quantity=int(p.quantity),
                cost_price=p.cost_price,
                selling_price=p.selling_price,
                ifood_price=p.ifood_price,
                is_active=bool(p.is_active),
                created_at=now,
                updated_at=now,
            )
            for p in products
        ]
        if not rows:
            return 0

        try:
            self.session.add_all(rows)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Falha na inserção em lote de %s produtos: %s", len(rows), e)
            raise BulkInsertError("Erro ao importar produtos") from e
        return len(rows)

    def add(self, product: Product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    def get(self, product_id: int) -> Product | None:
        return self.session.get(Product, product_id)

    def list_all(self) -> list[Product]:
        stmt = select(Product).order_by(Product.created_at.asc(), Product.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def delete(self, product: Product) -> None:
        self.session.delete(product)
        self.session.flush()


class UserRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_by_username(self, username: str) -> User | None:
        stmt = select(User).where(User.username == (username or "").strip())
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[User]:
        stmt = select(User).order_by(User.created_at.asc(), User.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def add(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def delete(self, user: User) -> None:
        # Keep the audit trail: detach log entries before removing the row.
        self.session.execute(update(UserLog).where(UserLog.user_id == user.id).values(user_id=None))
        self.session.execute(update(UserLog).where(UserLog.performed_by == user.id).values(performed_by=None))
        self.session.delete(user)
        self.session.flush()


class UserLogRepo:
    def __init__(self, session: Session):
        self.session = session

    def record(self, details: LogDetails, *, user_id: int | None, performed_by: int | None) -> UserLog:
        log = UserLog(
            action=details.action,
            user_id=user_id,
            performed_by=performed_by,
            details_json=details_to_dict(details),
        )
        self.session.add(log)
        self.session.flush()
        logger.info("Auditoria: %s usuário=%s por=%s", details.action, user_id, performed_by)
        return log

    def list_recent(self) -> list[UserLog]:
        stmt = (
            select(UserLog)
            .options(selectinload(UserLog.user), selectinload(UserLog.actor))
            .order_by(UserLog.created_at.desc(), UserLog.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

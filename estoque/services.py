from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
import logging
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from estoque.auditoria import CreateDetails, DeleteDetails, UpdateDetails, details_from_dict
from estoque.db import session_scope
from estoque.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from estoque.metricas import product_metrics, summarize_stock
from estoque.models import CATEGORIES, ROLES, Product, User, utcnow
from estoque.repos import ProductRepo, UserLogRepo, UserRepo
from estoque.security import CurrentUser, hash_password, issue_token, verify_password
from estoque.settings import Settings

logger = logging.getLogger(__name__)


def ensure_admin_user(session_factory: sessionmaker[Session], settings: Settings) -> bool:
    """Seed the admin account once. Returns True when it had to be created."""

    with session_scope(session_factory) as session:
        repo = UserRepo(session)
        if repo.get_by_username(settings.ADMIN_USERNAME) is not None:
            return False
        repo.add(
            User(
                username=settings.ADMIN_USERNAME,
                password_hash=hash_password(settings.ADMIN_PASSWORD),
                role="admin",
                is_active=True,
                is_first_access=True,
            )
        )
    logger.info("Usuário admin '%s' criado", settings.ADMIN_USERNAME)
    return True


class AuthService:
    def __init__(self, session: Session):
        self.session = session
        self.users = UserRepo(session)

    def login(self, username: str, password: str) -> dict[str, Any]:
        user = self.users.get_by_username(username)
        if user is None or not user.is_active or not verify_password(user.password_hash, password or ""):
            logger.warning("Falha de login para '%s'", username)
            raise AuthenticationError("Credenciais inválidas")

        return {"token": issue_token(user.id, user.role), "user": user.to_dict()}

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("Usuário não encontrado")
        if not verify_password(user.password_hash, current_password or ""):
            raise ValidationError("Senha atual incorreta")
        if not (new_password or "").strip():
            raise ValidationError("A nova senha é obrigatória")

        user.password_hash = hash_password(new_password)
        user.is_first_access = False
        self.session.flush()
        logger.info("Senha alterada para usuário %s", user.username)


class UserService:
    def __init__(self, session: Session):
        self.session = session
        self.users = UserRepo(session)
        self.logs = UserLogRepo(session)

    def _get_or_404(self, user_id: int) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("Usuário não encontrado")
        return user

    def create(self, actor: CurrentUser, username: str, password: str, role: str = "user") -> User:
        username = (username or "").strip()
        role = (role or "user").strip().lower()
        if not username or not password:
            raise ValidationError("Usuário e senha são obrigatórios")
        if role not in ROLES:
            raise ValidationError(f"Perfil inválido. Use: {', '.join(ROLES)}")
        if self.users.get_by_username(username) is not None:
            raise ConflictError("Nome de usuário já existe")

        user = self.users.add(
            User(
                username=username,
                password_hash=hash_password(password),
                role=role,
                is_active=True,
                is_first_access=True,
            )
        )
        self.logs.record(CreateDetails(username=username, role=role), user_id=user.id, performed_by=actor.id)
        return user

    def list(self) -> list[User]:
        return self.users.list_all()

    def toggle_status(self, actor: CurrentUser, user_id: int) -> User:
        user = self._get_or_404(user_id)
        if user.is_admin:
            raise ValidationError("Não é possível desativar um administrador")

        user.is_active = not user.is_active
        self.session.flush()
        self.logs.record(UpdateDetails(is_active=user.is_active), user_id=user.id, performed_by=actor.id)
        return user

    def delete(self, actor: CurrentUser, user_id: int) -> None:
        user = self._get_or_404(user_id)
        if user.is_admin:
            raise ValidationError("Não é possível excluir um administrador")

        details = DeleteDetails(username=user.username, role=user.role)
        self.users.delete(user)
        self.logs.record(details, user_id=None, performed_by=actor.id)

    def logs_as_dicts(self) -> list[dict[str, Any]]:
        def ref(u: User | None) -> dict[str, str] | None:
            return {"_id": str(u.id), "username": u.username} if u is not None else None

        out: list[dict[str, Any]] = []
        for log in self.logs.list_recent():
            details = details_from_dict(log.action, log.details_json)
            out.append(
                {
                    "_id": str(log.id),
                    "action": log.action,
                    "userId": ref(log.user),
                    "performedBy": ref(log.actor),
                    "details": details.to_dict(),
                    "createdAt": log.created_at.isoformat() if log.created_at else None,
                }
            )
        return out


def _decimal_field(payload: dict[str, Any], key: str, label: str) -> Decimal:
    raw = payload.get(key)
    if raw is None or raw == "" or isinstance(raw, bool):
        raise ValidationError(f"{label} é obrigatório")
    try:
        d = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError(f"{label} inválido")
    if not d.is_finite():
        raise ValidationError(f"{label} inválido")
    return d.quantize(Decimal("0.01"))


def _parse_product_payload(payload: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    """Translate the camelCase JSON body into validated model fields.

    With ``partial`` only the keys present in the body are validated and returned.
    """

    out: dict[str, Any] = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    for key, label in (("name", "Nome"), ("description", "Descrição")):
        if present(key):
            value = str(payload.get(key) or "").strip()
            if not value:
                raise ValidationError(f"{label} é obrigatório")
            out[key] = value

    if present("category"):
        category = str(payload.get("category") or "").strip()
        if category not in CATEGORIES:
            raise ValidationError(f"Categoria '{category}' inválida. Use: {', '.join(CATEGORIES)}")
        out["category"] = category

    if "weight" in payload or not partial:
        out["weight"] = str(payload.get("weight") or "").strip()

    if "quantity" in payload or not partial:
        raw_qty = payload.get("quantity", 0)
        try:
            qty = int(raw_qty if raw_qty not in (None, "") else 0)
        except (TypeError, ValueError):
            raise ValidationError("Quantidade inválida")
        if qty < 0:
            raise ValidationError("Quantidade não pode ser negativa")
        out["quantity"] = qty

    for key, field, label in (
        ("costPrice", "cost_price", "Preço de custo"),
        ("sellingPrice", "selling_price", "Preço de venda"),
    ):
        if present(key):
            value = _decimal_field(payload, key, label)
            if value <= 0:
                raise ValidationError(f"{label} deve ser maior que zero")
            out[field] = value

    if present("ifoodPrice"):
        value = _decimal_field(payload, "ifoodPrice", "Preço iFood")
        if value < 0:
            raise ValidationError("Preço iFood não pode ser negativo")
        out["ifood_price"] = value

    if "expirationDate" in payload:
        raw_date = payload.get("expirationDate")
        if raw_date in (None, ""):
            out["expiration_date"] = None
        else:
            try:
                # Accepts "2026-10-18" and "2026-10-18T00:00:00.000Z"
                out["expiration_date"] = date.fromisoformat(str(raw_date)[:10])
            except ValueError:
                raise ValidationError("Data de validade inválida")

    if "isActive" in payload:
        out["is_active"] = bool(payload.get("isActive"))

    return out


class ProductService:
    def __init__(self, session: Session):
        self.session = session
        self.products = ProductRepo(session)

    def get(self, product_id: int) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise NotFoundError("Produto não encontrado")
        return product

    def list(self) -> list[Product]:
        return self.products.list_all()

    def create(self, payload: dict[str, Any]) -> Product:
        fields = _parse_product_payload(payload, partial=False)
        product = self.products.add(Product(**fields))
        logger.info("Produto criado: %s (%s)", product.name, product.id)
        return product

    def update(self, product_id: int, payload: dict[str, Any]) -> Product:
        product = self.get(product_id)
        fields = _parse_product_payload(payload, partial=True)
        for field, value in fields.items():
            setattr(product, field, value)
        product.updated_at = utcnow()
        self.session.flush()
        return product

    def toggle_status(self, product_id: int) -> Product:
        product = self.get(product_id)
        product.is_active = not product.is_active
        product.updated_at = utcnow()
        self.session.flush()
        return product

    def delete(self, product_id: int) -> None:
        product = self.get(product_id)
        self.products.delete(product)
        logger.info("Produto removido: %s (%s)", product.name, product_id)

    def stock_summary(self) -> dict[str, Any]:
        return summarize_stock(self.products.list_all()).to_dict()

    def metrics(self, product_id: int) -> dict[str, Any]:
        return product_metrics(self.get(product_id))

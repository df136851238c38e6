from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

import bcrypt
from flask import current_app, g
from flask_jwt_extended import create_access_token, get_jwt_identity, verify_jwt_in_request

from estoque.db import session_scope
from estoque.errors import AuthenticationError, PermissionDeniedError
from estoque.repos import UserRepo


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def issue_token(user_id: int, role: str) -> str:
    return create_access_token(identity=str(user_id), additional_claims={"role": role})


@dataclass(frozen=True)
class CurrentUser:
    id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def current_user() -> CurrentUser:
    return g.current_user


def _load_current_user() -> CurrentUser:
    verify_jwt_in_request()
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        raise AuthenticationError("Token inválido")

    session_factory = current_app.extensions["estoque"]["session_factory"]
    with session_scope(session_factory) as session:
        user = UserRepo(session).get(user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Por favor, autentique-se")
        return CurrentUser(id=user.id, username=user.username, role=user.role)


def auth_required(func: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        g.current_user = _load_current_user()
        return func(*args, **kwargs)

    return wrapper


def admin_required(func: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        user = _load_current_user()
        if not user.is_admin:
            raise PermissionDeniedError("Acesso negado")
        g.current_user = user
        return func(*args, **kwargs)

    return wrapper

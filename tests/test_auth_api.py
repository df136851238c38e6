from __future__ import annotations

from estoque.db import session_scope
from estoque.repos import UserRepo
from estoque.services import ensure_admin_user


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["ok"] is True


def test_admin_is_seeded_once(session_factory, settings):
    assert ensure_admin_user(session_factory, settings) is False

    with session_scope(session_factory) as session:
        users = UserRepo(session).list_all()
        assert [(u.username, u.role, u.is_first_access) for u in users] == [("admin", "admin", True)]


def test_login_returns_token_and_user(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": "admin"})

    assert response.status_code == 200
    data = response.get_json()
    assert data["token"]
    assert data["user"]["username"] == "admin"
    assert data["user"]["role"] == "admin"
    assert data["user"]["isFirstAccess"] is True
    assert "password" not in data["user"]
    assert "password_hash" not in data["user"]


def test_login_with_wrong_password(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": "errada"})

    assert response.status_code == 401
    assert response.get_json() == {"error": "Credenciais inválidas"}


def test_login_unknown_user(client):
    response = client.post("/api/auth/login", json={"username": "ninguem", "password": "x"})
    assert response.status_code == 401


def test_inactive_user_cannot_login_or_use_token(client, admin_headers, user_headers):
    users = client.get("/api/users", headers=admin_headers).get_json()
    maria = next(u for u in users if u["username"] == "maria")
    client.patch(f"/api/users/{maria['_id']}/toggle-status", headers=admin_headers)

    login = client.post("/api/auth/login", json={"username": "maria", "password": "Maria123!"})
    assert login.status_code == 401

    products = client.get("/api/products", headers=user_headers)
    assert products.status_code == 401


def test_protected_route_requires_token(client):
    response = client.get("/api/products")

    assert response.status_code == 401
    assert response.get_json() == {"error": "Por favor, autentique-se"}


def test_garbage_token_is_rejected(client):
    response = client.get("/api/products", headers={"Authorization": "Bearer nao-e-um-jwt"})
    assert response.status_code == 401


def test_change_password_clears_first_access(client, admin_headers):
    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "admin", "newPassword": "NovaSenha1!"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.get_json() == {"message": "Senha alterada com sucesso"}

    old = client.post("/api/auth/login", json={"username": "admin", "password": "admin"})
    assert old.status_code == 401

    new = client.post("/api/auth/login", json={"username": "admin", "password": "NovaSenha1!"})
    assert new.status_code == 200
    assert new.get_json()["user"]["isFirstAccess"] is False


def test_change_password_with_wrong_current(client, admin_headers):
    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "errada", "newPassword": "NovaSenha1!"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json() == {"error": "Senha atual incorreta"}


def test_null_new_password_is_rejected(client, admin_headers):
    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "admin", "newPassword": None},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json() == {"error": "A nova senha é obrigatória"}


def test_login_with_null_credentials(client):
    response = client.post("/api/auth/login", json={"username": None, "password": None})
    assert response.status_code == 401

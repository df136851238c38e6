from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import Workbook

from estoque.db import create_engine_from_url, init_db, make_session_factory, session_scope
from estoque.models import Product
from estoque.services import ensure_admin_user
from estoque.settings import Settings
from estoque.web_server import create_app

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER = [
    "Nome",
    "Descrição",
    "Categoria",
    "Peso",
    "Quantidade",
    "Preço de Custo",
    "Preço de Venda",
    "Preço iFood",
]


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        INSTANCE_DIR=tmp_path / "instance",
        DATABASE_URL=f"sqlite:///{(tmp_path / 'test.sqlite').as_posix()}",
        JWT_SECRET_KEY="test-secret-key-long-enough-for-hs256-signing",
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD="admin",
        LOG_FILE="",
    )


@pytest.fixture()
def session_factory(settings: Settings):
    settings.ensure_instance()
    engine = create_engine_from_url(settings.DATABASE_URL)
    init_db(engine)
    sf = make_session_factory(engine)
    ensure_admin_user(sf, settings)
    yield sf
    engine.dispose()


@pytest.fixture()
def app(session_factory, settings: Settings):
    app = create_app(session_factory, settings)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username: str, password: str) -> str:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()["token"]


@pytest.fixture()
def admin_headers(client) -> dict[str, str]:
    return {"Authorization": f"Bearer {_login(client, 'admin', 'admin')}"}


@pytest.fixture()
def user_headers(client, admin_headers) -> dict[str, str]:
    created = client.post(
        "/api/users",
        json={"username": "maria", "password": "Maria123!", "role": "user"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    return {"Authorization": f"Bearer {_login(client, 'maria', 'Maria123!')}"}


@pytest.fixture()
def make_xlsx(tmp_path: Path):
    """Write rows (after a header row) to a fresh .xlsx and return its path."""

    counter = {"n": 0}

    def _make(rows: list[list], header: list | None = None) -> Path:
        wb = Workbook()
        ws = wb.active
        ws.append(HEADER if header is None else header)
        for row in rows:
            ws.append(row)
        counter["n"] += 1
        path = tmp_path / f"planilha_{counter['n']}.xlsx"
        wb.save(path)
        return path

    return _make


@pytest.fixture()
def add_product(session_factory):
    def _add(**overrides) -> int:
        fields = {
            "name": "Frango à Milanesa",
            "description": "Filé empanado",
            "category": "Frango",
            "weight": "300g",
            "quantity": 10,
            "cost_price": Decimal("15.00"),
            "selling_price": Decimal("29.90"),
            "ifood_price": Decimal("32.90"),
        }
        fields.update(overrides)
        with session_scope(session_factory) as session:
            product = Product(**fields)
            session.add(product)
            session.flush()
            return product.id

    return _add

from __future__ import annotations

from dataclasses import replace
from io import BytesIO

from openpyxl import load_workbook
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import XLSX_MIME
from estoque.web_server import create_app

PAYLOAD = {
    "name": "Salmão Grelhado",
    "description": "Posta com legumes",
    "category": "Peixe",
    "weight": "350g",
    "quantity": 4,
    "costPrice": 22.5,
    "sellingPrice": "45.00",
    "ifoodPrice": 49.9,
    "expirationDate": "2030-01-15T00:00:00.000Z",
}


def _upload(client, headers, content: bytes, filename="produtos.xlsx", mimetype=XLSX_MIME):
    return client.post(
        "/api/products/import/excel",
        data={"file": (BytesIO(content), filename, mimetype)},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_create_get_and_list(client, user_headers):
    created = client.post("/api/products", json=PAYLOAD, headers=user_headers)

    assert created.status_code == 201
    product = created.get_json()
    assert product["name"] == "Salmão Grelhado"
    assert product["costPrice"] == 22.5
    assert product["sellingPrice"] == 45.0
    assert product["isActive"] is True
    assert product["expirationDate"] == "2030-01-15"

    fetched = client.get(f"/api/products/{product['_id']}", headers=user_headers)
    assert fetched.get_json() == product

    listed = client.get("/api/products", headers=user_headers).get_json()
    assert [p["_id"] for p in listed] == [product["_id"]]


def test_create_rejects_invalid_payloads(client, user_headers):
    for override in (
        {"name": ""},
        {"description": None},
        {"category": "Sobremesa"},
        {"costPrice": 0},
        {"sellingPrice": "abc"},
        {"quantity": -1},
        {"expirationDate": "15/01/2030"},
    ):
        response = client.post("/api/products", json={**PAYLOAD, **override}, headers=user_headers)
        assert response.status_code == 400, override
        assert "error" in response.get_json()


def test_update_is_partial(client, user_headers, add_product):
    product_id = add_product()

    response = client.put(
        f"/api/products/{product_id}",
        json={"quantity": 25, "sellingPrice": 31.5},
        headers=user_headers,
    )

    assert response.status_code == 200
    product = response.get_json()
    assert product["quantity"] == 25
    assert product["sellingPrice"] == 31.5
    assert product["name"] == "Frango à Milanesa"
    assert product["costPrice"] == 15.0


def test_toggle_and_delete(client, user_headers, add_product):
    product_id = add_product()

    toggled = client.patch(f"/api/products/{product_id}/toggle-status", headers=user_headers)
    assert toggled.get_json()["isActive"] is False

    deleted = client.delete(f"/api/products/{product_id}", headers=user_headers)
    assert deleted.status_code == 200
    assert deleted.get_json() == {"message": "Produto deletado com sucesso"}

    missing = client.get(f"/api/products/{product_id}", headers=user_headers)
    assert missing.status_code == 404
    assert missing.get_json() == {"error": "Produto não encontrado"}


def test_unknown_product_is_404_everywhere(client, user_headers):
    assert client.put("/api/products/999", json={"quantity": 1}, headers=user_headers).status_code == 404
    assert client.patch("/api/products/999/toggle-status", headers=user_headers).status_code == 404
    assert client.delete("/api/products/999", headers=user_headers).status_code == 404
    assert client.get("/api/products/999/metrics", headers=user_headers).status_code == 404


def test_export_without_products_is_404(client, user_headers):
    response = client.get("/api/products/export/excel", headers=user_headers)

    assert response.status_code == 404
    assert response.get_json() == {"error": "Não há produtos cadastrados para exportar"}


def test_export_downloads_workbook(client, user_headers, add_product):
    add_product()

    response = client.get("/api/products/export/excel", headers=user_headers)

    assert response.status_code == 200
    assert response.mimetype == XLSX_MIME
    assert response.headers["Content-Disposition"] == "attachment; filename=produtos.xlsx"

    ws = load_workbook(BytesIO(response.data)).active
    assert ws["A2"].value == "Frango à Milanesa"


def test_import_reports_summary_and_cleans_upload_dir(client, user_headers, make_xlsx, settings):
    path = make_xlsx(
        [
            ["Picanha", "Na brasa", "Carne", "1kg", 3, 45.1, 89, 95.5],
            ["Lasanha", "Bolonhesa", "Massa", "500g", 2, 12, 25, 28],
            ["", "Sem nome", "Frango", "", 1, 10, 20, 22],
        ]
    )

    response = _upload(client, user_headers, path.read_bytes())

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Importação concluída. 1 produtos importados.",
        "total": 3,
        "success": 1,
        "errors": [
            "Linha 3: Categoria 'Massa' inválida. Use: Frango, Carne, Peixe, Vegetariano",
            "Linha 4: Dados inválidos (nome, categoria, e preços são obrigatórios)",
        ],
    }
    assert list(settings.upload_dir.iterdir()) == []

    products = client.get("/api/products", headers=user_headers).get_json()
    assert [p["name"] for p in products] == ["Picanha"]


def test_import_without_file(client, user_headers):
    response = client.post("/api/products/import/excel", headers=user_headers)

    assert response.status_code == 400
    assert response.get_json() == {"error": "Nenhum arquivo enviado"}


def test_import_rejects_non_excel_upload(client, user_headers):
    response = _upload(client, user_headers, b"nome;categoria", filename="produtos.csv", mimetype="text/csv")

    assert response.status_code == 400
    assert response.get_json() == {"error": "Apenas arquivos Excel são permitidos"}


def test_import_rejects_corrupt_workbook(client, user_headers, settings):
    response = _upload(client, user_headers, b"not really a zip")

    assert response.status_code == 400
    assert response.get_json() == {"error": "Arquivo Excel inválido ou corrompido"}
    assert list(settings.upload_dir.iterdir()) == []


def test_import_over_the_size_limit(session_factory, settings):
    app = create_app(session_factory, replace(settings, MAX_UPLOAD_MB=1))
    client = app.test_client()
    token = client.post("/api/auth/login", json={"username": "admin", "password": "admin"}).get_json()["token"]

    response = _upload(client, {"Authorization": f"Bearer {token}"}, b"0" * (2 * 1024 * 1024))

    assert response.status_code == 413
    assert response.get_json() == {"error": "Arquivo excede o limite de 1MB"}


def test_stock_summary_and_metrics(client, user_headers, add_product):
    product_id = add_product(quantity=2)
    add_product(name="Inativo", quantity=50, is_active=False)

    summary = client.get("/api/products/stock-summary", headers=user_headers).get_json()
    assert summary["totalItems"] == 2
    assert summary["totalCostValue"] == 30.0
    assert summary["totalSellingValue"] == 59.8
    assert summary["lowStockCount"] == 1

    metrics = client.get(f"/api/products/{product_id}/metrics", headers=user_headers).get_json()
    assert metrics["profitMarginPercentage"] == "99.33%"
    assert metrics["idealStock"] == 20
    assert metrics["isLowStock"] is True
    assert metrics["suggestedDiscount"] == 0


def test_import_storage_failure_is_500_without_summary(client, user_headers, make_xlsx, settings, monkeypatch):
    def failing_add_all(self, instances):
        raise IntegrityError("INSERT INTO products", {}, Exception("disk I/O error"))

    monkeypatch.setattr(Session, "add_all", failing_add_all)
    path = make_xlsx([["Picanha", "Na brasa", "Carne", "1kg", 3, 45.1, 89, 95.5]])

    response = _upload(client, user_headers, path.read_bytes())

    assert response.status_code == 500
    assert response.get_json() == {"error": "Erro ao importar produtos"}
    assert list(settings.upload_dir.iterdir()) == []
    assert client.get("/api/products", headers=user_headers).get_json() == []


def test_export_write_failure_is_500(client, user_headers, add_product, monkeypatch):
    def broken_workbook():
        raise OSError("sem espaço em disco")

    add_product()
    monkeypatch.setattr("estoque.excel_export.Workbook", broken_workbook)

    response = client.get("/api/products/export/excel", headers=user_headers)

    assert response.status_code == 500
    assert response.get_json() == {"error": "Erro ao exportar produtos para Excel"}

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from io import BytesIO
import logging

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session

from estoque.errors import NoDataError, WorkbookWriteError
from estoque.metricas import profit_margin_ratio, profit_margin_value
from estoque.models import Product
from estoque.repos import ProductRepo

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EXPORT_FILENAME = "produtos.xlsx"
SHEET_TITLE = "Produtos"

CURRENCY_FORMAT = "R$#,##0.00"
PERCENT_FORMAT = "0.00%"

# (key, header, width)
COLUMNS: list[tuple[str, str, int]] = [
    ("name", "Nome", 30),
    ("description", "Descrição", 50),
    ("category", "Categoria", 15),
    ("weight", "Peso", 10),
    ("quantity", "Quantidade", 12),
    ("cost_price", "Preço de Custo", 15),
    ("selling_price", "Preço de Venda", 15),
    ("ifood_price", "Preço iFood", 15),
    ("margin_percentage", "Margem (%)", 15),
    ("margin_value", "Valor Margem", 15),
    ("status", "Status", 10),
    ("created_at", "Data de Criação", 20),
]

CURRENCY_COLUMNS = {"cost_price", "selling_price", "ifood_price", "margin_value"}
PERCENT_COLUMNS = {"margin_percentage"}


@dataclass(frozen=True)
class ExportedWorkbook:
    content: bytes
    filename: str = EXPORT_FILENAME
    mimetype: str = XLSX_MIMETYPE


def _money(value: Decimal | None) -> float:
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01")))


def _local_date(value: datetime | None) -> str:
    if value is None:
        return ""
    # Stored as naive UTC; the sheet shows the server's local calendar day.
    return value.replace(tzinfo=timezone.utc).astimezone().strftime("%d/%m/%Y")


def export_row(product: Product) -> dict[str, object]:
    cost = Decimal(str(product.cost_price or 0))
    selling = Decimal(str(product.selling_price or 0))
    return {
        "name": product.name,
        "description": product.description,
        "category": product.category,
        "weight": product.weight,
        "quantity": int(product.quantity or 0),
        "cost_price": _money(cost),
        "selling_price": _money(selling),
        "ifood_price": _money(product.ifood_price),
        # Fraction; rendered as a percentage by PERCENT_FORMAT.
        "margin_percentage": float(profit_margin_ratio(cost, selling)),
        "margin_value": _money(profit_margin_value(cost, selling)),
        "status": "Ativo" if product.is_active else "Inativo",
        "created_at": _local_date(product.created_at),
    }


def build_products_workbook(products: list[Product]) -> bytes:
    try:
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE

        bold = Font(bold=True)
        for c, (_key, header, width) in enumerate(COLUMNS, start=1):
            cell = ws.cell(row=1, column=c, value=header)
            cell.font = bold
            ws.column_dimensions[get_column_letter(c)].width = width

        for r, product in enumerate(products, start=2):
            values = export_row(product)
            for c, (key, _header, _width) in enumerate(COLUMNS, start=1):
                cell = ws.cell(row=r, column=c, value=values[key])
                if key in CURRENCY_COLUMNS:
                    cell.number_format = CURRENCY_FORMAT
                elif key in PERCENT_COLUMNS:
                    cell.number_format = PERCENT_FORMAT

        buf = BytesIO()
        wb.save(buf)
        return buf.getvalue()
    except (OSError, ValueError, TypeError) as e:
        logger.error("Falha gerando planilha de produtos: %s", e)
        raise WorkbookWriteError("Erro ao exportar produtos para Excel") from e


def export_products(session: Session) -> ExportedWorkbook:
    products = ProductRepo(session).list_all()
    if not products:
        raise NoDataError("Não há produtos cadastrados para exportar")

    content = build_products_workbook(products)
    logger.info("Exportados %s produtos para Excel", len(products))
    return ExportedWorkbook(content=content)

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
import logging
from pathlib import Path
from typing import Any, Iterator, Sequence
import unicodedata
import uuid
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from estoque.errors import InvalidFileError, NoFileProvidedError
from estoque.models import CATEGORIES
from estoque.repos import ProductRepo
from estoque.tipos_importacao import ImportSummary, ProdutoImportado, RowRejection, RowResult

logger = logging.getLogger(__name__)

FIELDS = (
    "name",
    "description",
    "category",
    "weight",
    "quantity",
    "cost_price",
    "selling_price",
    "ifood_price",
)

INVALID_DATA_REASON = "Dados inválidos (nome, categoria, e preços são obrigatórios)"

ALLOWED_EXTENSIONS = {".xlsx", ".xls"}
ALLOWED_MIMETYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}


def _norm(x: Any) -> str:
    s = str(x or "").strip()
    s = " ".join(s.split())
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return s.casefold()


def _text(value: Any) -> str:
    if value is None:
        return ""
    # Excel stores "123" typed in a numeric cell as 123.0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_int(value: Any) -> int:
    if value in (None, ""):
        return 0
    try:
        n = int(float(str(value).strip().replace(",", ".")))
    except (ValueError, TypeError, OverflowError):
        return 0
    return max(n, 0)


def _parse_money(value: Any) -> Decimal:
    if value in (None, "") or isinstance(value, bool):
        return Decimal("0")

    if isinstance(value, (int, float, Decimal)):
        s = str(value)
    else:
        s = str(value).strip()
        # Remove currency text/symbols and keep digits/separators.
        s = s.replace("R$", "").replace("$", "")
        s = "".join(ch for ch in s if ch.isdigit() or ch in (".", ",", "-"))
        if not s:
            return Decimal("0")

        if "." in s and "," in s:
            # pt-BR: 1.234,56
            s = s.replace(".", "").replace(",", ".")
        elif "," in s:
            # 1234,56 or 1,234
            parts = s.split(",")
            if len(parts) == 2 and len(parts[1]) <= 2:
                s = s.replace(",", ".")
            else:
                s = s.replace(",", "")
        elif s.count(".") > 1:
            # 1.234.567; a single dot is always the decimal point
            s = s.replace(".", "")

    try:
        d = Decimal(s)
    except InvalidOperation:
        return Decimal("0")
    if not d.is_finite():
        return Decimal("0")
    return d


class PositionalLayout:
    """Maps product fields to 1-based column indexes.

    The default mapping is the fixed import contract:
    1=Nome, 2=Descrição, 3=Categoria, 4=Peso, 5=Quantidade,
    6=Preço de Custo, 7=Preço de Venda, 8=Preço iFood.
    """

    def __init__(self, columns: dict[str, int] | None = None):
        self.columns = dict(columns) if columns else {f: i for i, f in enumerate(FIELDS, start=1)}

    def extract(self, values: Sequence[Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for field in FIELDS:
            idx1 = self.columns.get(field, 0)
            i0 = idx1 - 1
            out[field] = values[i0] if 0 <= i0 < len(values) else None
        return out


class HeaderLayout(PositionalLayout):
    """Column mapping resolved from the header row instead of positions."""

    HEADER_ALIASES: dict[str, list[str]] = {
        "name": ["Nome", "Produto"],
        "description": ["Descrição", "Descricao"],
        "category": ["Categoria"],
        "weight": ["Peso"],
        "quantity": ["Quantidade", "Qtd", "Estoque"],
        "cost_price": ["Preço de Custo", "Custo"],
        "selling_price": ["Preço de Venda", "Venda"],
        "ifood_price": ["Preço iFood", "iFood"],
    }

    REQUIRED = ("name", "category", "cost_price", "selling_price")

    @classmethod
    def from_header(cls, header_values: Sequence[Any]) -> HeaderLayout:
        present: dict[str, int] = {}
        for idx, v in enumerate(header_values, start=1):
            k = _norm(v)
            if k and k not in present:
                present[k] = idx

        columns: dict[str, int] = {}
        for field, aliases in cls.HEADER_ALIASES.items():
            for a in aliases:
                k = _norm(a)
                if k in present:
                    columns[field] = present[k]
                    break

        missing = [cls.HEADER_ALIASES[f][0] for f in cls.REQUIRED if f not in columns]
        if missing:
            raise InvalidFileError(f"Colunas obrigatórias ausentes no cabeçalho: {', '.join(missing)}")
        return cls(columns)


POSITIONAL_LAYOUT = PositionalLayout()


def validate_row(
    values: Sequence[Any],
    row_number: int,
    layout: PositionalLayout | None = None,
) -> RowResult:
    """Validate one spreadsheet row into a product candidate or a rejection.

    Never raises: any unexpected error becomes a rejection for this row only.
    """

    layout = layout or POSITIONAL_LAYOUT
    try:
        cells = layout.extract(values)

        name = _text(cells["name"])
        description = _text(cells["description"])
        category = _text(cells["category"])
        weight = _text(cells["weight"])
        quantity = _parse_int(cells["quantity"])
        cost_price = _parse_money(cells["cost_price"])
        selling_price = _parse_money(cells["selling_price"])
        ifood_price = _parse_money(cells["ifood_price"])

        if not name or not category or cost_price <= 0 or selling_price <= 0:
            return RowResult(rejection=RowRejection(row_number, INVALID_DATA_REASON))

        if category not in CATEGORIES:
            return RowResult(
                rejection=RowRejection(
                    row_number,
                    f"Categoria '{category}' inválida. Use: {', '.join(CATEGORIES)}",
                )
            )

        return RowResult(
            candidate=ProdutoImportado(
                name=name,
                description=description,
                category=category,
                weight=weight,
                quantity=quantity,
                cost_price=cost_price,
                selling_price=selling_price,
                ifood_price=ifood_price,
                is_active=True,
            )
        )
    except Exception as e:
        logger.warning("Erro processando linha %s: %s", row_number, e)
        return RowResult(rejection=RowRejection(row_number, str(e)))


def _is_blank(row_vals: Sequence[Any]) -> bool:
    return all(v is None or str(v).strip() == "" for v in row_vals)


class ExcelImporter:
    def __init__(self, xlsx_path: Path, *, by_header: bool = False):
        self.xlsx_path = Path(xlsx_path)
        self.by_header = bool(by_header)

    def _open(self):
        # read_only avoids loading every cell object for large sheets.
        try:
            return load_workbook(filename=self.xlsx_path, read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
            logger.warning("Planilha ilegível %s: %s", self.xlsx_path.name, e)
            raise InvalidFileError("Arquivo Excel inválido ou corrompido") from e

    def read(self) -> tuple[ImportSummary, list[ProdutoImportado]]:
        """Validate every data row of the first worksheet.

        Row 1 is the header and is always skipped. Fully blank rows are
        ignored and do not count towards ``total``.
        """

        wb = self._open()
        try:
            if not wb.worksheets:
                raise InvalidFileError("A planilha não contém nenhuma aba")
            ws = wb.worksheets[0]

            layout: PositionalLayout = POSITIONAL_LAYOUT
            if self.by_header:
                header = next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ())
                layout = HeaderLayout.from_header(header)

            summary = ImportSummary()
            candidates: list[ProdutoImportado] = []
            for row_number, row_vals in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
                if _is_blank(row_vals):
                    continue

                summary.total += 1
                result = validate_row(row_vals, row_number, layout)
                if result.ok:
                    candidates.append(result.candidate)
                    summary.success += 1
                else:
                    summary.errors.append(result.rejection)
            return summary, candidates
        finally:
            wb.close()


def import_products(xlsx_path: Path, session: Session, *, by_header: bool = False) -> ImportSummary:
    """Validate a spreadsheet and bulk insert the accepted rows.

    The insert is all-or-nothing: a storage failure raises ``BulkInsertError``
    and the per-row tallies are discarded with it.
    """

    summary, candidates = ExcelImporter(xlsx_path, by_header=by_header).read()
    if candidates:
        ProductRepo(session).insert_many(candidates)

    logger.info(
        "Importação de %s: %s linhas, %s importadas, %s rejeitadas",
        Path(xlsx_path).name,
        summary.total,
        summary.success,
        len(summary.errors),
    )
    return summary


def check_excel_upload(file_storage: Any) -> None:
    if file_storage is None or not getattr(file_storage, "filename", ""):
        raise NoFileProvidedError()

    ext = Path(file_storage.filename).suffix.lower()
    mimetype = str(getattr(file_storage, "mimetype", "") or "").lower()
    if ext not in ALLOWED_EXTENSIONS or mimetype not in ALLOWED_MIMETYPES:
        raise InvalidFileError("Apenas arquivos Excel são permitidos")


@contextmanager
def temporary_upload(file_storage: Any, directory: Path) -> Iterator[Path]:
    """Save an uploaded spreadsheet under a unique name; always remove it."""

    check_excel_upload(file_storage)

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    ext = Path(file_storage.filename).suffix.lower()
    tmp = (directory / f"import_{uuid.uuid4().hex}{ext}").resolve()
    try:
        file_storage.save(tmp)
        yield tmp
    finally:
        try:
            tmp.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Não foi possível remover upload temporário %s: %s", tmp, e)

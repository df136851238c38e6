from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class ProdutoImportado:
    """Produto validado a partir de uma linha da planilha, pronto para inserção.

    Existe para desacoplar a leitura do Excel do modelo persistido.
    """

    name: str
    description: str
    category: str
    weight: str
    quantity: int
    cost_price: Decimal
    selling_price: Decimal
    ifood_price: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class RowRejection:
    row_number: int
    reason: str

    @property
    def message(self) -> str:
        return f"Linha {self.row_number}: {self.reason}"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class RowResult:
    candidate: ProdutoImportado | None = None
    rejection: RowRejection | None = None

    @property
    def ok(self) -> bool:
        return self.candidate is not None


@dataclass
class ImportSummary:
    total: int = 0
    success: int = 0
    errors: list[RowRejection] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Importação concluída. {self.success} produtos importados."

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "total": int(self.total),
            "success": int(self.success),
            "errors": [e.message for e in self.errors],
        }

from __future__ import annotations

import argparse
import json
from pathlib import Path

from estoque.db import create_engine_from_url, init_db, make_session_factory, session_scope
from estoque.errors import EstoqueError
from estoque.excel_import import import_products
from estoque.logs import configure_logging
from estoque.settings import Settings


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Importa produtos de uma planilha Excel para o banco")
    p.add_argument("xlsx", type=Path, help="Planilha .xlsx (linha 1 = cabeçalho)")
    p.add_argument("--by-header", action="store_true", help="Localiza as colunas pelo nome do cabeçalho")
    args = p.parse_args(argv)

    settings = Settings()
    settings.ensure_instance()
    configure_logging(settings)

    engine = create_engine_from_url(settings.DATABASE_URL)
    init_db(engine)
    sf = make_session_factory(engine)

    try:
        with session_scope(sf) as session:
            summary = import_products(
                args.xlsx.resolve(),
                session,
                by_header=bool(args.by_header or settings.IMPORT_BY_HEADER),
            )
    except EstoqueError as e:
        print(f"Erro: {e.message}")
        return 1

    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

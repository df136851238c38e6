from __future__ import annotations

from estoque.db import create_engine_from_url, make_session_factory, reset_db
from estoque.services import ensure_admin_user
from estoque.settings import Settings


def main() -> int:
    settings = Settings()
    settings.ensure_instance()
    engine = create_engine_from_url(settings.DATABASE_URL)

    reset_db(engine)
    ensure_admin_user(make_session_factory(engine), settings)

    print("OK: banco recriado")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

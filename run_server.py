from __future__ import annotations

import argparse
import logging
import socket

from flask import Flask

from estoque.db import create_engine_from_url, init_db, make_session_factory
from estoque.logs import configure_logging
from estoque.services import ensure_admin_user
from estoque.settings import Settings
from estoque.web_server import create_app

logger = logging.getLogger(__name__)


def _ensure_port_free(host: str, port: int) -> bool:
    # Returns True if we can bind (port free), False otherwise.
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind((host, port))
            return True
        finally:
            s.close()
    except OSError:
        return False


def bootstrap(settings: Settings) -> Flask:
    """Everything that must happen once per process before serving requests."""

    settings.ensure_instance()
    configure_logging(settings)

    engine = create_engine_from_url(settings.DATABASE_URL)
    init_db(engine)
    session_factory = make_session_factory(engine)
    ensure_admin_user(session_factory, settings)

    return create_app(session_factory, settings)


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Estoque - API do painel de gestão")
    p.add_argument("--host", default="0.0.0.0", help="Bind host (use 0.0.0.0 for LAN)")
    p.add_argument("--port", type=int, default=3001, help="Port")
    p.add_argument("--debug", action="store_true", help="Flask debug mode")
    args = p.parse_args(argv)

    if not _ensure_port_free(args.host, args.port):
        print(f"O servidor já está em execução (ou a porta está ocupada): {args.host}:{args.port}")
        return 2

    settings = Settings()
    app = bootstrap(settings)

    logger.info("Servidor rodando em http://%s:%s/ (db: %s)", args.host, args.port, settings.DATABASE_URL)
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

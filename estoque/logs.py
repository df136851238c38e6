from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from estoque.settings import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(settings: Settings) -> None:
    """Configure the root logger once, at process bootstrap.

    Console output is always enabled; the rotating file under
    ``INSTANCE_DIR/logs`` is added when ``LOG_FILE`` is set.
    """

    level = getattr(logging, str(settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = str(settings.LOG_FILE or "").strip()
    if log_file:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                settings.log_dir / log_file,
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    logging.getLogger(__name__).info("Logging configurado (nível %s)", logging.getLevelName(level))

import logging
from logging.handlers import RotatingFileHandler
import os

from tischplan.config import settings


def setup_logging():
    """
    Logger "tischplan" für alle Module (tischplan.services.*, tischplan.routers.*).
    Konsole: INFO (DEBUG mit settings.debug), Datei: settings.log_file mit Rotation.
    """
    logger = logging.getLogger("tischplan")
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    log_dir = os.path.dirname(settings.log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))

    file_handler = RotatingFileHandler(settings.log_file, maxBytes=10_000_000, backupCount=5, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    # Requests loggt die eigene Middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return logger

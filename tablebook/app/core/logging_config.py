import logging
import os
from logging.handlers import RotatingFileHandler

from tablebook.app.core.config import settings


def setup_logging() -> logging.Logger:
    """Configure the ``tablebook`` logger once and return it."""
    logger = logging.getLogger("tablebook")
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(settings.LOG_LEVEL.upper())
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.LOG_FILE:
        directory = os.path.dirname(settings.LOG_FILE)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = RotatingFileHandler(settings.LOG_FILE, maxBytes=10_000_000, backupCount=5)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

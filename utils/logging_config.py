# utils/logging_config.py
# Configuración centralizada de logging (archivo + consola)

import os
import logging

LOGS_DIR = os.getenv("LOGS_DIR", "logs")
APP_LOG_FILE = os.path.join(LOGS_DIR, "app.log")
LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure centralized logging for the application"""
    os.makedirs(LOGS_DIR, exist_ok=True)
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(APP_LOG_FILE, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    # httpx / supabase son muy verbosos en INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)

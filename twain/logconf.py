# logconf.py
import datetime
import logging
import os
import sys

from twain.config import Config

FORMAT = "%(asctime)s | %(levelname)-5s | %(module)s | %(message)s"


def log_file_path(log_dir: str, day: datetime.date | None = None) -> str:
    return os.path.join(log_dir, f"twain_{day or datetime.date.today()}.log")


def init(level: str | None = None, log_dir: str | None = None):
    """
    Configure the root logger for the server process: stdout plus one file
    per day under LOG_DIR. Level and directory default to the Config values.
    """
    level = level or Config.LOG_LEVEL
    log_dir = log_dir or Config.LOG_DIR

    os.makedirs(log_dir, exist_ok=True)
    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file_path(log_dir), encoding="utf-8"),
    ]
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=FORMAT,
        handlers=handlers,
        force=True,
    )
    logging.captureWarnings(True)

import json
import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path


def resolve_backend_dir(cwd: Path | None = None) -> Path:
    """Locate the directory that holds ``csvFiles`` regardless of launch directory."""
    base = (cwd or Path.cwd()).resolve()
    candidates = [
        base,
        base / "backend",
        base.parent,
        base.parent / "backend",
    ]
    for candidate in candidates:
        if (candidate / "csvFiles").exists():
            return candidate
    return base / "backend"


def _default_data_dir() -> Path:
    env = os.getenv("CALENDAR_DATA_DIR")
    if env:
        return Path(env)
    return resolve_backend_dir() / "csvFiles"


def _default_backup_dir() -> Path:
    env = os.getenv("CALENDAR_BACKUP_DIR")
    if env:
        return Path(env)
    return _default_data_dir().parent / "backups"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = field(default_factory=_default_data_dir)
    backup_dir: Path = field(default_factory=_default_backup_dir)
    log_level: str = os.getenv("CALENDAR_LOG_LEVEL", "INFO").strip().upper()
    log_file: str | None = os.getenv("CALENDAR_LOG_FILE") or None


settings = Settings()


class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.")
            + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(cfg: Settings = settings) -> logging.Logger:
    logger = logging.getLogger("scheduler")
    logger.setLevel(getattr(logging, cfg.log_level, logging.INFO))
    if logger.handlers:
        return logger
    stderr_handler = logging.StreamHandler()
    stderr_handler.setFormatter(JsonFormatter())
    logger.addHandler(stderr_handler)
    if cfg.log_file:
        file_handler = logging.handlers.RotatingFileHandler(cfg.log_file, maxBytes=10 * 1024 * 1024, backupCount=3)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)
    return logger

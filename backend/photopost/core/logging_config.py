from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any

from photopost.core.config import Settings, settings as default_settings

_CONFIGURED = False


def configure_logging(force: bool = False, config_settings: Settings | None = None) -> None:
    """
    Configure application wide logging.

    Console output carries timestamps and logger names; LOG_LEVEL, LOG_FORMAT and
    LOG_FILE can override the defaults through the environment.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    cfg = config_settings or default_settings
    log_level = cfg.LOG_LEVEL.upper()
    log_format = (
        cfg.LOG_FORMAT
        or "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
    )
    date_format = cfg.LOG_DATE_FORMAT or "%Y-%m-%d %H:%M:%S"
    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    }

    handler_names = ["console"]

    if cfg.LOG_FILE:
        log_file_path = Path(cfg.LOG_FILE).expanduser()
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logging.getLogger(__name__).warning("Failed to prepare log directory for %s: %s", log_file_path, exc)
        else:
            handlers["file"] = {
                "class": "logging.FileHandler",
                "formatter": "standard",
                "filename": str(log_file_path),
                "encoding": "utf-8",
            }
            handler_names.append("file")

    uvicorn_logger = {
        "handlers": handler_names,
        "level": log_level,
        "propagate": False,
    }
    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": log_format,
                "datefmt": date_format,
            }
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": handler_names,
                "level": log_level,
            },
            "uvicorn": dict(uvicorn_logger),
            "uvicorn.error": dict(uvicorn_logger),
            "uvicorn.access": dict(uvicorn_logger),
            # Request lines from outbound weather/geocoding calls are noise at INFO.
            "httpx": {"level": "WARNING"},
        },
    }

    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug("Logging configured (level=%s)", log_level)
    _CONFIGURED = True

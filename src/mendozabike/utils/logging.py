from __future__ import annotations

import logging
from typing import Optional

from mendozabike.config.models import LoggingSettings


# Third-party loggers that are too chatty at INFO/DEBUG (retries, connection pool churn).
_NOISY_LOGGERS = ("urllib3", "urllib3.connectionpool")


def configure_logging(settings: LoggingSettings) -> None:
    level = getattr(logging, settings.level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {settings.level}")

    handlers: Optional[list[logging.Handler]] = None
    if settings.file is not None:
        settings.file.parent.mkdir(parents=True, exist_ok=True)
        handlers = [logging.FileHandler(settings.file, encoding="utf-8"), logging.StreamHandler()]

    logging.basicConfig(level=level, format=settings.format, handlers=handlers)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

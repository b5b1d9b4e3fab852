from __future__ import annotations

import logging
import logging.config

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the API process.
    Modules log through logging.getLogger(__name__).
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": _FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": (level or "INFO").upper(),
            },
            "loggers": {
                # SQL echo stays off unless explicitly raised
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )

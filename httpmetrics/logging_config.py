import logging
import logging.config

from httpmetrics.config import get_settings


def setup_logging():
    """
    Configure log output for measurements
    Routes the httpmetrics, httpx and httpcore loggers to a single console handler.
    httpcore logs every connection event at DEBUG, so it stays at WARNING unless DEBUG is set.
    """
    settings = get_settings()
    log_level = "DEBUG" if settings.DEBUG else "INFO"

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "httpmetrics": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "httpx": {
                "handlers": ["console"],
                "level": "INFO" if settings.DEBUG else "WARNING",
                "propagate": False,
            },
            "httpcore": {
                "handlers": ["console"],
                "level": log_level if settings.DEBUG else "WARNING",
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)

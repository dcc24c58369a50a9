import logging.config

from stableramp.core.config import settings


def configure_logging(level: str = None) -> None:
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "stableramp": {
                "handlers": ["console"],
                "level": (level or settings.LOG_LEVEL).upper(),
                "propagate": False,
            },
        },
    })

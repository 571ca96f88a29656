import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "/tmp/soakload.log")

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
        "file": {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": LOG_FILE,
            "mode": "a",
        },
    },
    "loggers": {
        "soakload": {
            "level": LOG_LEVEL,
            "handlers": ["console", "file"],
            "propagate": False,  # Don't pass 'soakload' logs up to the root logger
        },
        # Shut the log levels for libraries up
        "uvicorn.access": {
            "level": "WARNING",
            "handlers": ["console", "file"],
            "propagate": False,
        },
        "httpx": {
            "level": "WARNING",
            "handlers": ["console", "file"],
            "propagate": False,
        },
        "xrpl": {
            "level": "WARNING",  # Only show warnings/errors from xrpl-py
            "handlers": ["console", "file"],
            "propagate": False,
        },
    },
    # Default for all other loggers
    "root": {
        "level": "WARNING",
        "handlers": ["console", "file"],
    },
}


def setup_logging(level: str | None = None):
    """Apply the logging configuration."""
    config = LOGGING_CONFIG
    if level is not None:
        config = {**LOGGING_CONFIG, "loggers": {**LOGGING_CONFIG["loggers"]}}
        config["loggers"]["soakload"] = {**config["loggers"]["soakload"], "level": level.upper()}
    logging.config.dictConfig(config)
    os.environ.setdefault("PYTHONUNBUFFERED", "1")

import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")


def logging_config(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> dict:
    handlers = ["console"]
    config = {
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
                "stream": sys.stderr,
            },
        },
        "loggers": {
            "payout": {
                "level": level,
                "handlers": handlers,
                "propagate": False,  # Don't pass 'payout' logs up to the root logger
            },
            # Shut the log levels for libraries up
            "httpx": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
            "httpcore": {
                "level": "WARNING",
                "handlers": handlers,
                "propagate": False,
            },
        },
        # Default for all other loggers
        "root": {
            "level": "WARNING",
            "handlers": handlers,
        },
    }
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
        handlers.append("file")
    return config


def setup_logging(level: str | None = None):
    """ Apply the logging configuration. """
    logging.config.dictConfig(logging_config(level=(level or LOG_LEVEL).upper()))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")

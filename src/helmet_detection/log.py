"""Logging configuration for applications embedding the detector."""

from __future__ import annotations

import logging.config
import sys


def build_log_config(level: str = "INFO") -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "%(asctime)s %(filename)s[line:%(lineno)d](Thread:%(threadName)s) "
                          "%(levelname)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stderr,
                "formatter": "verbose",
            },
        },
        "loggers": {
            "helmet_detection": {
                "handlers": ["console"],
                "level": level.upper(),
                "propagate": False,
            },
        },
    }


def setup_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_log_config(level))

"""Logging for the API process.

Route modules log under ``jobflow.api.*`` so the API and the engine share
the handlers attached once at startup.
"""

import logging

from jobflow.logging_config import get_logger as _jobflow_logger
from jobflow.logging_config import setup_jobflow_logging


def configure_logging(level: str = "INFO") -> logging.Logger:
    return setup_jobflow_logging(service_id="api", level=level)


def get_logger(name: str) -> logging.Logger:
    if not name.startswith("jobflow"):
        name = f"api.{name}"
    return _jobflow_logger(name)

"""Logging configuration for jobflow.

Two kinds of output:

- the ``jobflow`` logger, written to ``<data dir>/logs/local-{date}.log``
  (and to the console when running at DEBUG level);
- a flat workflow-event trail, ``<data dir>/logs/workflow-events-{date}.log``,
  one line per state transition, settlement or notification. This is an
  operator aid only; the JobEvent table remains the audit record.

The data directory defaults to ``~/.jobflow`` and can be overridden with
``JOBFLOW_DATA_DIR``.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER_NAME = "jobflow"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_data_dir() -> Path:
    """Return the jobflow data directory."""
    override = os.environ.get("JOBFLOW_DATA_DIR")
    if override:
        return Path(override)
    return Path.home() / ".jobflow"


def get_log_dir() -> Path:
    log_dir = get_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_jobflow_logging(service_id: str = "default", level: str = "INFO") -> logging.Logger:
    """Configure the ``jobflow`` logger.

    Safe to call more than once; handlers are only attached the first time.

    Args:
        service_id: Name of the process doing the logging (api, worker, ...).
        level: Log level name. Unknown names fall back to INFO.

    Returns:
        The configured ``jobflow`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    resolved = getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    has_file = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    if not has_file:
        log_file = get_log_dir() / f"local-{_today()}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if resolved <= logging.DEBUG:
        has_console = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in logger.handlers
        )
        if not has_console:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(console)

    logger.debug(f"Logging configured | service={service_id} | level={logging.getLevelName(resolved)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``jobflow`` namespace."""
    if name == LOGGER_NAME or name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def log_workflow_event(event_type: str, details: str, job_id: str = "-") -> None:
    """Append one line to the workflow-event trail."""
    timestamp = datetime.now(timezone.utc).isoformat()
    line = f"{timestamp} | {event_type} | job={job_id} | {details}\n"
    try:
        with open(get_log_dir() / f"workflow-events-{_today()}.log", "a", encoding="utf-8") as fh:
            fh.write(line)
    except OSError as e:
        logging.getLogger(LOGGER_NAME).warning(f"Could not write workflow event log: {e}")


def log_transition(
    job_id: str,
    entity: str,
    entity_id: str,
    from_status: Optional[str],
    to_status: str,
    actor_id: str,
) -> None:
    """Record a status change of a workflow entity."""
    log_workflow_event(
        "transition",
        f"entity={entity} id={entity_id[:8]}... from={from_status or '-'} "
        f"to={to_status} actor={actor_id}",
        job_id=job_id,
    )


def log_settlement(job_id: str, invoice_id: str, amount: str, fee: str, reference: str) -> None:
    """Record a fund release."""
    log_workflow_event(
        "settlement",
        f"invoice={invoice_id[:8]}... amount={amount} fee={fee} ref={reference}",
        job_id=job_id,
    )


def log_notification(job_id: str, notification_id: str, status: str, attempts: int = 1) -> None:
    """Record a notification dispatch attempt."""
    log_workflow_event(
        "notification",
        f"id={notification_id[:8]}... status={status} attempts={attempts}",
        job_id=job_id,
    )

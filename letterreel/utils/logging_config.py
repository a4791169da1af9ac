"""Logging for the letter service: console output plus optional Cloud Logging."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"

# Chatty third-party loggers and the level they are held at outside DEBUG
NOISY_LOGGERS = {
    "werkzeug": logging.WARNING,
    "PIL": logging.INFO,
    "asyncio": logging.WARNING,
}


def setup_logging(level: str = "INFO", gcp_project_id: Optional[str] = None) -> None:
    """
    Configure root logging for the CLI and the HTTP service.

    Args:
        level: Log level name; unknown names fall back to INFO
        gcp_project_id: Send records to Cloud Logging for this project as well
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if log_level > logging.DEBUG:
        for name, floor in NOISY_LOGGERS.items():
            logging.getLogger(name).setLevel(max(floor, log_level))

    if gcp_project_id:
        _attach_cloud_logging(gcp_project_id, log_level)


def _attach_cloud_logging(project_id: str, log_level: int) -> None:
    try:
        import google.cloud.logging
    except ImportError:
        logging.warning("google-cloud-logging not installed. Install the 'gcp' extra for Cloud Logging.")
        return

    try:
        client = google.cloud.logging.Client(project=project_id)
        client.setup_logging(log_level=log_level)
    except Exception as e:
        logging.warning(f"Cloud Logging unavailable for project {project_id}: {e}")
        return
    logging.info(f"Cloud Logging enabled for project: {project_id}")


def get_logger(name: str) -> logging.Logger:
    """Module logger; handlers come from setup_logging()."""
    return logging.getLogger(name)

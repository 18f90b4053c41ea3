# src/utils/logger.py

"""
Centralized Logging Configuration
==================================

Provides:
- Console logging
- Optional file logging under paths.logs
- Config-driven log level
- One configured project logger per process

Logger Name:
------------
"IPE" (Inventory Projection Engine namespace)

Engine modules log through ``logging.getLogger(__name__)``; pipelines
configure the project logger once via ``get_logger(config)``. Child
loggers under the ``projection02`` / ``ingestion01`` namespaces are
attached to the same handlers by ``attach_module_loggers``.
"""

import os
import logging
from typing import Dict, Iterable


LOGGER_NAME = "IPE"

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

VALID_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

MODULE_NAMESPACES = ("projection02", "ingestion01", "utils")


def get_logger(config: Dict) -> logging.Logger:
    """
    Create and configure the project-wide logger.
    """

    if not isinstance(config, dict):
        raise ValueError("config must be a dictionary.")

    if "logging" not in config:
        raise ValueError("Missing 'logging' section in configuration.")

    if "paths" not in config or "logs" not in config["paths"]:
        raise ValueError("Missing 'paths.logs' configuration.")

    logger = logging.getLogger(LOGGER_NAME)

    # Already initialized in this process
    if logger.handlers:
        return logger

    logging_cfg = config["logging"]

    if "level" not in logging_cfg:
        raise ValueError("Missing 'logging.level' in configuration.")

    log_level_str = str(logging_cfg["level"]).upper()

    if log_level_str not in VALID_LEVELS:
        raise ValueError(
            f"Invalid log level '{log_level_str}'. "
            f"Valid options: {list(VALID_LEVELS.keys())}"
        )

    logger.setLevel(VALID_LEVELS[log_level_str])
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    # --------------------------------------------------
    # Console Handler
    # --------------------------------------------------

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # --------------------------------------------------
    # File Handler
    # --------------------------------------------------

    if logging_cfg.get("log_to_file", False):

        if "filename" not in logging_cfg:
            raise ValueError("Missing 'logging.filename' in configuration.")

        filename = logging_cfg["filename"]

        if not isinstance(filename, str) or not filename.strip():
            raise ValueError("logging.filename must be a non-empty string.")

        log_dir = config["paths"]["logs"]
        os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(
            os.path.join(log_dir, filename),
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    attach_module_loggers(logger, MODULE_NAMESPACES)

    return logger


def attach_module_loggers(
    project_logger: logging.Logger,
    namespaces: Iterable[str]
) -> None:
    """
    Route module loggers (``logging.getLogger(__name__)``) through the
    project handlers so engine messages share one format and destination.
    """

    for namespace in namespaces:
        module_logger = logging.getLogger(namespace)
        module_logger.setLevel(project_logger.level)
        module_logger.propagate = False

        for handler in project_logger.handlers:
            if handler not in module_logger.handlers:
                module_logger.addHandler(handler)

#!/usr/bin/env python3
"""Logging configuration shared by the CLI and the orchestrator."""

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Configure the package logger once and return it."""
    logger = logging.getLogger('mlops_pipeline')
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


def attach_file_handler(log_path: Path, level: Optional[int] = None) -> logging.Handler:
    """Mirror package log records into a file, e.g. the archived run log."""
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    if level is not None:
        handler.setLevel(level)

    package_logger = logging.getLogger('mlops_pipeline')
    # an unconfigured package logger inherits the root's WARNING level
    if package_logger.level == logging.NOTSET:
        package_logger.setLevel(level if level is not None else logging.INFO)
    package_logger.addHandler(handler)
    return handler


def detach_handler(handler: logging.Handler) -> None:
    logging.getLogger('mlops_pipeline').removeHandler(handler)
    handler.close()

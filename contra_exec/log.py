"""
Structured logging setup
"""

import logging
import sys

import structlog


def _stderr_logger(*args):
    # looked up per call so redirected stderr is honoured
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure structlog for the worker process"""
    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False
    )

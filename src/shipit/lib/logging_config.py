"""Logging configuration for shipit.

Provides a single place to configure the root handler for CLI runs and a
helper to obtain module loggers.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("paramiko", "docker", "urllib3")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging for a CLI invocation.

    Args:
        verbose: Enable DEBUG level output, including third-party libraries
        quiet: Only show warnings and errors
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name."""
    return logging.getLogger(name)

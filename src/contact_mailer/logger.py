"""Logging utilities for the contact mailer.

Handlers, level and format are configured once with ``logging.basicConfig()``
in the entry point; modules only ask for a named logger.

Example:
    Typical usage in a module::

        from contact_mailer.logger import get_logger

        logger = get_logger("Transport")
        logger.info("Connection established")
"""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "ContactMailer") -> logging.Logger:
    """Retrieve a logger bound to ``name``.

    Args:
        name: The logger name. Defaults to "ContactMailer".

    Returns:
        A ``logging.Logger`` instance.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger for the service process.

    Forces reconfiguration so that uvicorn or a previous call does not leave
    duplicate handlers behind.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )

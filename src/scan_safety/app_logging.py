"""Logging setup for the scanner, catalog and API."""

import logging

LOGGER_NAME = "scan_safety"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Held at WARNING unless debug is on.
_NOISY_LOGGERS = ("httpx", "httpcore", "hpack")


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach one stream handler to the package logger and return it.

    Repeated calls only adjust the level. Debug mode keeps third-party
    HTTP client logs visible.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    return logger

# portfolio_authz/core/logging_config.py
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOGGER_NAME = "portfolio_authz"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the package logger once.

    Modules log through logging.getLogger(__name__), which propagates to the
    "portfolio_authz" logger configured here.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    # Avoid duplicate handlers in dev reload
    if logger.handlers:
        return logger

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream_handler)

    return logger

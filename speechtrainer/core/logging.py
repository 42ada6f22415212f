import logging
import sys

from speechtrainer.constants.environmental_variables import LOG_LEVEL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty during model downloads and HTTP retries.
THIRD_PARTY_LOGGERS = ["urllib3", "transformers", "filelock"]


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Sends package logs to stdout and keeps library output at WARNING."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.WARNING)

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    package_logger = logging.getLogger("speechtrainer")
    package_logger.setLevel(level.upper())
    return package_logger

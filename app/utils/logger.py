import logging
import sys

from config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


# function to initialize a named logger writing to stderr, or to a file when configured
def setup_logger(name: str, log_file: str = LOG_FILE, level=LOG_LEVEL):
    formatter = logging.Formatter(LOG_FORMAT)
    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the application logger, so one handler serves every module"""
    return logging.getLogger(f"hostel.{name}")


logger = setup_logger("hostel")

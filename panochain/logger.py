"""Logging utilities"""

import logging
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name='panochain', level=logging.INFO, log_file=None):
    """
    Setup logger with consistent formatting.

    Calling it again updates the console level and adds a file handler for
    a log file not seen before; handlers are never duplicated.

    Args:
        name: Logger name (the package logger by default, so every module
            logger underneath inherits the handlers)
        level: Logging level for the console handler
        log_file: Optional path of a file that receives DEBUG output

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = next((h for h in logger.handlers if _is_console(h)), None)
    if console_handler is None:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
    console_handler.setLevel(level)

    if log_file:
        path = os.path.abspath(os.fspath(log_file))
        if not any(isinstance(h, logging.FileHandler) and h.baseFilename == path
                   for h in logger.handlers):
            file_handler = logging.FileHandler(path, mode='a', encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    has_file = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    logger.setLevel(logging.DEBUG if has_file else level)
    return logger


def _is_console(handler):
    # FileHandler subclasses StreamHandler
    return (isinstance(handler, logging.StreamHandler)
            and not isinstance(handler, logging.FileHandler))

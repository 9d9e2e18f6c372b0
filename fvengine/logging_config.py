"""
Logging Configuration
Sets up the package logger for fvengine.
"""
import logging
import sys
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the logger of the 'fvengine' namespace.

    Solver performance lines are logged at INFO, scheme selection and loop
    state transitions at DEBUG. numba's own compiler logging is kept at
    WARNING so a DEBUG run only shows engine messages.

    Args:
        level: Logging level, as a number or a name ("DEBUG", "INFO", ...)
        log_file: Optional path to also write the log to.
    """
    if isinstance(level, str):
        name, level = level, logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown logging level '{name}'")

    logger = logging.getLogger("fvengine")
    logger.setLevel(level)

    # Avoid duplicated output when called more than once
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.getLogger("numba").setLevel(logging.WARNING)

    logger.info("Logging initialized.")
    return logger

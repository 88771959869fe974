"""Logging configuration for the simulation package."""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    name: str = "beergame",
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Set up logging configuration.

    Args:
        name: Name of the logger. Child modules (``beergame.services.engine``)
            propagate to it.
        level: Logging level as a number or a name such as ``"DEBUG"``.
        log_file: Optional path of a rotating log file. The parent directory
            is created when missing.

    Returns:
        Configured logger instance.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    logger = logging.getLogger(name)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    # Add handlers if they haven't been added before
    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file is not None:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path, maxBytes=5*1024*1024, backupCount=5, encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # Prevent logging from propagating to the root logger
    logger.propagate = False

    return logger

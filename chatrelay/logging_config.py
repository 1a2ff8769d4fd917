"""Loguru setup for the relay.

One coloured stderr sink always; in production two rotating file sinks
(everything, errors only). Modules log through ``get_logger(__name__)`` so
every record carries the module name in ``extra["name"]``.

Sender ids and recipient numbers go through ``mask_phone`` before they are
logged.
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]}:{line} | {message}"


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_file: bool = True,
) -> None:
    """Replace loguru's default sink with the relay's sinks.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for rotating log files
        enable_file: Add the file sinks (production)
    """
    logger.remove()
    logger.configure(extra={"name": "chatrelay"})

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=not enable_file,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "chatrelay_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level=level,
            rotation="50 MB",
            retention="14 days",
            compression="gz",
            diagnose=False,
        )
        logger.add(
            log_path / "chatrelay_errors_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT + "\n{exception}",
            level="ERROR",
            rotation="20 MB",
            retention="60 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> "logger":
    """Logger bound to a module name.

    Usage:
        logger: Any = get_logger(__name__)
    """
    return logger.bind(name=name)


def mask_phone(phone: str) -> str:
    """Mask a phone number or chat address for logging.

    212612345678@c.us -> 21XXXX5678@c.us
    """
    if not phone:
        return "XXXX"
    number, sep, suffix = phone.partition("@")
    if len(number) < 6:
        return f"XXXX{sep}{suffix}"
    return f"{number[:2]}XXXX{number[-4:]}{sep}{suffix}"

"""
Logging setup for the training results webhook.
"""

import sys

from loguru import logger


def setup_logging(
    service_name: str = "training-webhook",
    log_level: str = "INFO",
    log_format: str | None = None,
    enable_json: bool = False,
):
    """
    Set up loguru logging.

    Args:
        service_name: Name shown in every log line
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Custom log format string
        enable_json: Enable JSON structured logging
    """
    logger.remove()

    if enable_json:
        logger.add(sys.stdout, level=log_level.upper(), serialize=True)
    else:
        if log_format is None:
            log_format = (
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                f"{service_name}:{{function}}:{{line}} - {{message}}"
            )

        logger.add(
            sys.stdout,
            format=log_format,
            level=log_level.upper(),
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    logger.info(f"✅ Logging configured for {service_name} at level: {log_level}")

"""
Logging for the astro-risk scoring core.

Console output plus file sinks under ``data/logs`` (override with
``ASTRO_RISK_LOG_DIR``). Each scoring component gets its own JSONL file so
training runs and runtime fallbacks can be audited separately.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger


class LogConfig:
    """Centralized logging configuration."""

    LOG_DIR = Path(os.environ.get("ASTRO_RISK_LOG_DIR", "data/logs"))
    LOG_LEVEL = os.environ.get("ASTRO_RISK_LOG_LEVEL", "INFO")
    LOG_FORMAT = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<magenta>{extra[component]: <14}</magenta> | "
        "<level>{message}</level>"
    )
    COMPONENTS = [
        "features",
        "data_generator",
        "trainer",
        "inference",
        "artifacts",
    ]

    @classmethod
    def setup(
        cls,
        log_level: Optional[str] = None,
        enable_json: bool = True,
        log_dir: Optional[Union[str, Path]] = None,
    ):
        """
        (Re)configure all sinks.

        Args:
            log_level: Console/application log level, defaults to ASTRO_RISK_LOG_LEVEL
            enable_json: Write per-component JSONL files
            log_dir: Directory for log files, defaults to LOG_DIR
        """
        log_level = (log_level or cls.LOG_LEVEL).upper()
        if log_dir is not None:
            cls.LOG_DIR = Path(log_dir)
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)

        logger.remove()
        # Records logged without get_logger() still format
        logger.configure(extra={"component": "-"})

        logger.add(sys.stderr, format=cls.LOG_FORMAT, level=log_level, colorize=True)

        if enable_json:
            for component in cls.COMPONENTS:
                logger.add(
                    cls.LOG_DIR / f"{component}.jsonl",
                    format="{message}",
                    level="INFO",
                    rotation="1 day",
                    retention="30 days",
                    compression="zip",
                    serialize=True,
                    filter=lambda record, comp=component: record["extra"].get("component") == comp,
                )

        logger.add(
            cls.LOG_DIR / "application.log",
            format=cls.LOG_FORMAT,
            level=log_level,
            rotation="100 MB",
            retention="7 days",
            compression="zip",
        )

        logger.debug(f"Logging to {cls.LOG_DIR} at level {log_level}")


def get_logger(component: str):
    """
    Logger bound to a scoring component.

    Example:
        >>> logger = get_logger("trainer")
        >>> logger.info("Starting training")
    """
    return logger.bind(component=component)


# Configure on import; scripts call LogConfig.setup() again for --verbose
try:
    LogConfig.setup()
except OSError as e:
    logging.basicConfig(level=logging.INFO)
    logging.warning(f"Failed to initialize file logging: {e}")

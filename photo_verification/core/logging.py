"""
Logging setup for the service
"""

import logging
import os

from photo_verification.core.config import Settings, settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(config: Settings = settings) -> None:
    """Configure root logging with console and file handlers"""
    handlers = [logging.StreamHandler()]

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))

    logging.basicConfig(
        level=config.log_level.upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    logging.getLogger(__name__).info(f"📝 Logging configured at {config.log_level.upper()}")

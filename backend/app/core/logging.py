import logging
import os
from .config import settings


def setup_logging():
    """Configure logging for the application."""

    # Configure logging format
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    handlers = [logging.StreamHandler()]  # Console output
    if settings.log_file:
        # Create logs directory if it doesn't exist
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file))

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format=log_format,
        datefmt=date_format,
        handlers=handlers
    )

    # Create logger for this application
    logger = logging.getLogger("smart_dedupe")
    logger.setLevel(getattr(logging, settings.log_level.upper()))

    # Reduce noise from external libraries
    logging.getLogger("sklearn").setLevel(logging.WARNING)

    return logger


# Global logger instance
logger = setup_logging()

import logging

from xyzhub.models.logging import configure_logger

# Initialize logger without handlers
logger = logging.getLogger("xyzhub-cli")
logger.propagate = True


def setup_logging(verbose: bool = False, verbose_level: str = "INFO") -> logging.Logger:
    # Only errors reach the terminal when not in verbose mode
    return configure_logger(logger, verbose, verbose_level, quiet_level=logging.ERROR)


# Don't automatically set up logging - will be controlled by CLI

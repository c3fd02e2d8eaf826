import logging

from colorlog import ColoredFormatter

LOG_FORMAT = (
    "%(log_color)s%(asctime)s%(reset)s - %(name)s - %(log_color)s%(levelname)s%(reset)s"
    " - %(filename)s - %(funcName)s - line %(lineno)d - %(message)s"
)

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

logger = logging.getLogger("xyzhub-models")
logger.propagate = True


def resolve_level(verbose_level: str | int) -> int:
    """Map a level name such as ``"DEBUG"`` to its numeric value."""
    if isinstance(verbose_level, int):
        return verbose_level
    level = logging.getLevelNamesMapping().get(verbose_level.upper())
    if level is None:
        raise ValueError(f"Unknown logging level: {verbose_level}")
    return level


def configure_logger(
    target: logging.Logger,
    verbose: bool,
    verbose_level: str | int,
    quiet_level: int,
) -> logging.Logger:
    """Attach a single colored stream handler to ``target`` and set its level."""
    target.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, reset=True, log_colors=LOG_COLORS))
    target.addHandler(handler)
    target.setLevel(resolve_level(verbose_level) if verbose else quiet_level)
    return target


def setup_logging(verbose: bool = False, verbose_level: str = "INFO") -> logging.Logger:
    # Models only speak up in verbose mode
    return configure_logger(logger, verbose, verbose_level, quiet_level=logging.CRITICAL)

import logging

from rich.logging import RichHandler

from utils.config import load_config


class CenteredFormatter(logging.Formatter):
    """Pads logger names to the widest name seen so far, keeping columns aligned."""

    longest_name_length = 12

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=12):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        width = CenteredFormatter.longest_name_length
        record.name = record.name.center(width)
        return super().format(record)


def get_logger(name=None) -> logging.Logger:
    """
    Return a logger writing through RichHandler.

    The level comes from AppConfig.level_name.
    Handlers are attached once per logger name.
    """
    name = name or "greengo"
    logger = logging.getLogger(name)
    level = logging.getLevelName(load_config().level_name)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(CenteredFormatter("[%(name)s]  %(message)s"))
        handler.setLevel(level)
        logger.addHandler(handler)
        logger.propagate = False

    return logger


def set_level(level: str) -> None:
    """Apply a level to every logger created through get_logger."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        return
    for logger in logging.Logger.manager.loggerDict.values():
        if isinstance(logger, logging.Logger) and logger.handlers:
            logger.setLevel(numeric)
            for handler in logger.handlers:
                handler.setLevel(numeric)

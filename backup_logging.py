import logging

from rich.logging import RichHandler

from backup_errors import ConfigError

LOGGER_NAME = "drive_backup"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# winston level names still show up in old .env files
_ALIASES = {
    "verbose": logging.DEBUG,
    "silly": logging.DEBUG,
    "warn": logging.WARNING,
}


def parse_level(name):
    name = str(name).strip().lower()
    if name in _ALIASES:
        return _ALIASES[name]
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown LOG_LEVEL: {name!r}")
    return level


def setup_logging(level="debug", log_file="google-drive-backup.log", propagate=False):
    """Return the process logger, writing to the console and to ``log_file``.

    Calling it again replaces the handlers instead of stacking new ones.
    """
    lvl = parse_level(level)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = RichHandler(level=lvl, show_path=False, markup=False)
    console.setFormatter(logging.Formatter("%(message)s"))

    try:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot open log file {log_file}: {e}") from e
    file_handler.setLevel(lvl)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    logger.addHandler(console)
    logger.addHandler(file_handler)
    logger.setLevel(lvl)
    logger.propagate = propagate
    return logger

import logging
import os
import threading
from functools import cache
from logging import Formatter
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from mdstore.config.settings import DOT_DIR, global_settings, LogLevel
from mdstore.config.text_styles import EMOJI_ERROR, EMOJI_WARN, RICH_STYLES, StoreHighlighter

LOG_DIR_NAME = f"{DOT_DIR}/logs"
LOG_FILE_NAME = "mdstore.log"

_log_root = Path(".")

_log_lock = threading.RLock()


def log_dir() -> Path:
    return _log_root / LOG_DIR_NAME


def log_file_path() -> Path:
    return log_dir() / LOG_FILE_NAME


@cache
def get_highlighter():
    return StoreHighlighter()


@cache
def get_theme():
    return Theme(RICH_STYLES)


def new_console() -> Console:
    """
    Create a new console with our theme and highlighter.
    """
    return Console(theme=get_theme(), highlighter=get_highlighter(), stderr=True)


_file_handler: Optional[logging.FileHandler] = None
_console_handler: Optional[RichHandler] = None


def logging_setup():
    """
    Set up or reset logging setup. Call at initial run and again if log directory changes.
    Replaces all previous handlers on the package logger. Can be called to reset with
    different settings.
    """
    settings = global_settings()
    os.makedirs(log_dir(), exist_ok=True)

    # Verbose logging to file, important logging to console.
    global _file_handler
    _file_handler = logging.FileHandler(log_file_path())
    _file_handler.setLevel(settings.file_log_level.value)
    _file_handler.setFormatter(Formatter("%(asctime)s %(levelname).1s %(name)s - %(message)s"))

    global _console_handler
    _console_handler = RichHandler(
        console=new_console(),
        level=settings.console_log_level.value,
        show_time=False,
        show_path=False,
        show_level=False,
        highlighter=get_highlighter(),
        markup=False,
    )
    _console_handler.setLevel(settings.console_log_level.value)
    _console_handler.setFormatter(Formatter("%(message)s"))

    logger = logging.getLogger("mdstore")
    logger.setLevel(min(settings.file_log_level.value, settings.console_log_level.value))
    logger.propagate = False
    # Remove any existing handlers.
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(_console_handler)
    logger.addHandler(_file_handler)


def prefix(line, warn_emoji: str = ""):
    return " ".join(filter(None, [warn_emoji, str(line)]))


def prefix_args(args, warn_emoji: str = ""):
    if len(args) > 0 and warn_emoji:
        args = (prefix(args[0], warn_emoji),) + args[1:]
    return args


class CustomLogger:
    """
    Custom logger to be clearer about user messages (`message()`) versus
    warnings and errors.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, *args, **kwargs):
        self.logger.debug(*args, **kwargs)

    def info(self, *args, **kwargs):
        self.logger.info(*args, **kwargs)

    def message(self, *args, **kwargs):
        self.logger.warning(*args, **kwargs)

    def warning(self, *args, **kwargs):
        self.logger.warning(*prefix_args(args, warn_emoji=EMOJI_WARN), **kwargs)

    def error(self, *args, **kwargs):
        self.logger.error(*prefix_args(args, warn_emoji=EMOJI_ERROR), **kwargs)

    def log(self, level: LogLevel, *args, **kwargs):
        getattr(self, level.name)(*args, **kwargs)

    # Fallback for other attributes/methods.
    def __getattr__(self, attr):
        return getattr(self.logger, attr)


def get_logger(name: str):
    return CustomLogger(name)


def ensure_logging():
    """
    Set up logging at the current log root unless it is already set up.
    """
    with _log_lock:
        if _file_handler is None:
            logging_setup()


def get_log_file_stream():
    return _file_handler.stream if _file_handler else None


def reset_logging(log_root: Optional[Path] = None):
    """
    Reset the logging root, if it has changed.
    """
    global _log_root
    with _log_lock:
        if log_root and log_root != _log_root:
            log = get_logger(__name__)
            log.info("Resetting log root: %s", log_file_path().absolute())

            _log_root = log_root

        logging_setup()


## Tests


def test_logging_setup(tmp_path):
    reset_logging(tmp_path)
    log = get_logger("mdstore.test")
    log.message("Saved %s", "doc001")
    log.warning("Careful with %s", "sdoc002")
    stream = get_log_file_stream()
    assert stream is not None
    stream.flush()
    text = (tmp_path / LOG_DIR_NAME / LOG_FILE_NAME).read_text()
    assert "Saved doc001" in text
    assert f"{EMOJI_WARN} Careful with sdoc002" in text

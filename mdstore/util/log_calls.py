"""
Call logging for store operations. Arguments are often whole documents, so values
are flattened to one line and truncated, and failures are logged with their
`ErrorKind` before propagating.
"""

import functools
import time
from typing import Any, Callable, Literal, Optional

import regex
from strif import abbrev_str

from mdstore.config.logger import get_logger
from mdstore.config.text_styles import EMOJI_CALL_BEGIN, EMOJI_CALL_END, EMOJI_ERROR
from mdstore.errors import StoreError

log = get_logger(__name__)

LogLevelStr = Literal["debug", "info", "warning", "error"]

DEFAULT_TRUNCATE = 80

_NEEDS_QUOTES = regex.compile(r"[\s'\"]")


def abbreviate_arg(value: Any, truncate_length: Optional[int] = DEFAULT_TRUNCATE) -> str:
    """
    Short one-line form of an argument. Strings are quoted only if they contain
    whitespace or quotes, and truncated strings note their full length.
    """
    if isinstance(value, str):
        flat = regex.sub(r"\s+", " ", value).strip()
        shown = abbrev_str(flat, truncate_length, indicator="…") if truncate_length else flat
        truncated = len(shown) < len(flat)
        if _NEEDS_QUOTES.search(value):
            shown = repr(shown)
        if truncated:
            shown += f" ({len(value)} chars)"
        return shown

    shown = regex.sub(r"\s+", " ", str(value))
    return abbrev_str(shown, truncate_length, indicator="…") if truncate_length else shown


def format_duration(seconds: float) -> str:
    if seconds < 1.0:
        return f"{seconds * 1000:.1f}ms"
    return f"{seconds:.2f}s"


def log_calls(
    level: LogLevelStr = "info",
    show_return: bool = False,
    truncate_length: Optional[int] = DEFAULT_TRUNCATE,
):
    """
    Decorator that logs a call with its arguments and, on return, the time taken.
    A `StoreError` is logged with its kind at the same level and re-raised.
    Methods are logged as `Class.method` without `self`.
    """
    log_func = getattr(log, level)

    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            shown_args = args[1:] if args and hasattr(args[0], func.__name__) else args
            arg_strs = [abbreviate_arg(a, truncate_length) for a in shown_args] + [
                f"{k}={abbreviate_arg(v, truncate_length)}" for k, v in kwargs.items()
            ]
            name = func.__qualname__
            log_func("%s %s(%s)", EMOJI_CALL_BEGIN, name, ", ".join(arg_strs))

            start = time.time()
            try:
                result = func(*args, **kwargs)
            except StoreError as e:
                log_func(
                    "%s %s failed after %s: %s: %s",
                    EMOJI_ERROR,
                    name,
                    format_duration(time.time() - start),
                    e.kind,
                    e,
                )
                raise

            done = f"{EMOJI_CALL_END} {name} done in {format_duration(time.time() - start)}"
            if show_return:
                log_func("%s: %s", done, abbreviate_arg(result, truncate_length))
            else:
                log_func("%s", done)
            return result

        return wrapper

    return decorator


## Tests


def test_abbreviate_arg():
    assert abbreviate_arg("doc001") == "doc001"
    assert abbreviate_arg("two words") == "'two words'"
    assert abbreviate_arg(None) == "None"

    long_text = "# Title\n\n" + "word " * 100
    abbreviated = abbreviate_arg(long_text, truncate_length=40)
    assert "…" in abbreviated
    assert "\n" not in abbreviated
    assert abbreviated.endswith(f"({len(long_text)} chars)")


def test_format_duration():
    assert format_duration(0.0123) == "12.3ms"
    assert format_duration(12.5) == "12.50s"


def test_log_calls():
    import pytest

    from mdstore.errors import NotFound

    @log_calls(level="debug", show_return=True)
    def add(a, b):
        return a + b

    assert add(1, 2) == 3
    assert add.__name__ == "add"

    @log_calls()
    def missing(path):
        raise NotFound(f"Not found: {path}")

    with pytest.raises(NotFound):
        missing("a.md")

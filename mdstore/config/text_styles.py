"""
Settings that define the visual appearance of console log output.
"""

import re

from rich.highlighter import _combine_regex, RegexHighlighter

## Emojis

EMOJI_SAVED = "⩣"

EMOJI_DELETED = "⌫"

EMOJI_WARN = "∆"

EMOJI_ERROR = "‼︎"

EMOJI_CALL_BEGIN = "≫"

EMOJI_CALL_END = "≪"


## Colors

COLOR_PATH = "cyan"

COLOR_ID = "bright_green"

COLOR_SCOPE = "bright_blue"

COLOR_HASH = "bright_black"

COLOR_WARN = "bright_red"

COLOR_ERROR = "bold bright_red"

COLOR_SAVED = "blue"

COLOR_CALL = "bright_yellow"


RICH_STYLES = {
    "mdstore.path": COLOR_PATH,
    "mdstore.doc_id": COLOR_ID,
    "mdstore.scope": COLOR_SCOPE,
    "mdstore.hash": COLOR_HASH,
    "mdstore.warn": COLOR_WARN,
    "mdstore.error": COLOR_ERROR,
    "mdstore.saved": COLOR_SAVED,
    "mdstore.deleted": COLOR_SAVED,
    "mdstore.log_call": COLOR_CALL,
}


class StoreHighlighter(RegexHighlighter):
    """
    Highlights document ids, scopes, content hashes and status emojis in log lines.
    """

    base_style = "mdstore."
    highlights = [
        _combine_regex(
            f"(?P<warn>{re.escape(EMOJI_WARN)})",
            f"(?P<error>{re.escape(EMOJI_ERROR)})",
            f"(?P<saved>{re.escape(EMOJI_SAVED)})",
            f"(?P<deleted>{re.escape(EMOJI_DELETED)})",
            f"(?P<log_call>{re.escape(EMOJI_CALL_BEGIN)}|{re.escape(EMOJI_CALL_END)})",
        ),
        r"\b(?P<doc_id>s?(?:doc|tpl|crt)\d{3,})\b",
        r"\b(?P<scope>project|shared)\b",
        r"\b(?P<hash>sha1:[0-9a-f]{8,40})\b",
        r"(?P<path>'[^'\n]+')",
    ]

"""
Edit operations on document content.

The wire form is a JSON-style dict with an `op` tag:

    {"op": "replaceOnce", "oldText": ..., "newText": ...}
    {"op": "replaceAll", "oldText": ..., "newText": ...}
    {"op": "replaceRegex", "pattern": ..., "flags": "gi", "replacement": ...}
    {"op": "replaceAllContent", "content": ...}

`replaceRegex` patterns and replacements use Python regex syntax (`\\1` or `\\g<name>`
for groups). Flags are `i`, `m`, `s`, `x` and `g`, where `g` replaces every match and
otherwise only the first match is replaced.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

import regex

from mdstore.errors import ValidationError


@dataclass(frozen=True)
class ReplaceOnce:
    old_text: str
    new_text: str


@dataclass(frozen=True)
class ReplaceAll:
    old_text: str
    new_text: str


@dataclass(frozen=True)
class ReplaceRegex:
    pattern: str
    replacement: str
    flags: str = ""


@dataclass(frozen=True)
class ReplaceAllContent:
    content: str


EditOp = ReplaceOnce | ReplaceAll | ReplaceRegex | ReplaceAllContent

REGEX_FLAGS = {
    "i": regex.IGNORECASE,
    "m": regex.MULTILINE,
    "s": regex.DOTALL,
    "x": regex.VERBOSE,
}

GLOBAL_FLAG = "g"


def _field(op: Dict[str, Any], camel_name: str, snake_name: str, required: bool = True) -> Any:
    value = op.get(camel_name, op.get(snake_name))
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise ValidationError(
            f"Edit op `{op.get('op')}` needs a string `{camel_name}`", {"op": op}
        )
    return value


def parse_edit_op(op: EditOp | Dict[str, Any]) -> EditOp:
    """
    Parse an edit op from its dict form. Keys may be camelCase (as on the wire) or
    snake_case.
    """
    if isinstance(op, (ReplaceOnce, ReplaceAll, ReplaceRegex, ReplaceAllContent)):
        return op
    if not isinstance(op, dict):
        raise ValidationError(f"Invalid edit op: {op!r}", {"op": op})

    match op.get("op"):
        case "replaceOnce":
            return ReplaceOnce(
                _field(op, "oldText", "old_text"), _field(op, "newText", "new_text")
            )
        case "replaceAll":
            return ReplaceAll(_field(op, "oldText", "old_text"), _field(op, "newText", "new_text"))
        case "replaceRegex":
            return ReplaceRegex(
                _field(op, "pattern", "pattern"),
                _field(op, "replacement", "replacement"),
                _field(op, "flags", "flags", required=False) or "",
            )
        case "replaceAllContent":
            return ReplaceAllContent(_field(op, "content", "content"))
        case other:
            raise ValidationError(f"Unknown edit op: `{other}`", {"op": op})


def parse_edit_ops(ops: Iterable[EditOp | Dict[str, Any]]) -> List[EditOp]:
    parsed = [parse_edit_op(op) for op in ops]
    if not parsed:
        raise ValidationError("No edit ops given")
    return parsed


def compile_regex(pattern: str, flags: str) -> Tuple[Any, bool]:
    """
    Compile a pattern with letter flags. Returns the compiled pattern and whether
    the replacement is global.
    """
    regex_flags = 0
    for flag in flags:
        if flag == GLOBAL_FLAG:
            continue
        if flag not in REGEX_FLAGS:
            raise ValidationError(
                f"Unsupported regex flag: `{flag}`", {"pattern": pattern, "flags": flags}
            )
        regex_flags |= REGEX_FLAGS[flag]
    try:
        return regex.compile(pattern, regex_flags), GLOBAL_FLAG in flags
    except regex.error as e:
        raise ValidationError(
            f"Invalid regex pattern: {e}", {"pattern": pattern, "flags": flags}
        )


def apply_edit_op(content: str, op: EditOp) -> Tuple[str, bool]:
    """
    Apply one edit op, returning the new content and whether the op matched.
    A `ReplaceOnce` that doesn't match is an error. Other ops that don't match
    leave the content as is.
    """
    match op:
        case ReplaceOnce(old_text=old_text, new_text=new_text):
            if not old_text:
                raise ValidationError("replaceOnce needs a non-empty old text", {"op": op})
            if old_text not in content:
                raise ValidationError(
                    f"Text to replace not found: {old_text!r}", {"old_text": old_text}
                )
            return content.replace(old_text, new_text, 1), True

        case ReplaceAll(old_text=old_text, new_text=new_text):
            if not old_text:
                raise ValidationError("replaceAll needs a non-empty old text", {"op": op})
            if old_text not in content:
                return content, False
            return content.replace(old_text, new_text), True

        case ReplaceRegex(pattern=pattern, replacement=replacement, flags=flags):
            compiled, is_global = compile_regex(pattern, flags)
            try:
                new_content, count = compiled.subn(
                    replacement, content, count=0 if is_global else 1
                )
            except (regex.error, IndexError) as e:
                raise ValidationError(
                    f"Invalid regex replacement: {e}",
                    {"pattern": pattern, "replacement": replacement},
                )
            return new_content, count > 0

        case ReplaceAllContent(content=new_content):
            return new_content, True

        case _:
            raise ValidationError(f"Unknown edit op: {op!r}", {"op": op})


def apply_edit_ops(content: str, ops: Iterable[EditOp]) -> Tuple[str, int]:
    """
    Apply edit ops in order. Returns the final content and the number of ops that
    matched.
    """
    applied = 0
    for op in ops:
        content, matched = apply_edit_op(content, op)
        applied += matched
    return content, applied


## Tests


def test_parse_edit_op():
    assert parse_edit_op({"op": "replaceOnce", "oldText": "a", "newText": "b"}) == ReplaceOnce(
        "a", "b"
    )
    assert parse_edit_op({"op": "replaceRegex", "pattern": "a+", "replacement": "b"}) == (
        ReplaceRegex("a+", "b", "")
    )
    assert parse_edit_op({"op": "replaceAllContent", "content": ""}) == ReplaceAllContent("")
    for bad in [{"op": "append", "text": "x"}, {"op": "replaceAll", "oldText": "x"}, "nope"]:
        try:
            parse_edit_op(bad)  # type: ignore
            assert False
        except ValidationError:
            pass


def test_apply_edit_ops():
    content = "alpha beta alpha\nGamma"
    assert apply_edit_op(content, ReplaceOnce("alpha", "A")) == ("A beta alpha\nGamma", True)
    assert apply_edit_op(content, ReplaceAll("alpha", "A")) == ("A beta A\nGamma", True)
    assert apply_edit_op(content, ReplaceAll("zeta", "Z")) == (content, False)
    assert apply_edit_op(content, ReplaceRegex(r"a(\w)", r"<\1>")) == (
        "<l>pha beta alpha\nGamma",
        True,
    )
    assert apply_edit_op(content, ReplaceRegex("^gamma$", "G", "im")) == (
        "alpha beta alpha\nG",
        True,
    )
    assert apply_edit_op(content, ReplaceRegex("alpha", "A", "g"))[0] == "A beta A\nGamma"
    assert apply_edit_op(content, ReplaceAllContent("new")) == ("new", True)

    final, applied = apply_edit_ops(
        content, [ReplaceAll("beta", "B"), ReplaceAll("zeta", "Z"), ReplaceOnce("Gamma", "C")]
    )
    assert final == "alpha B alpha\nC"
    assert applied == 2

    for bad in [
        ReplaceOnce("zeta", "Z"),
        ReplaceOnce("", "Z"),
        ReplaceRegex("(unclosed", "x"),
        ReplaceRegex("a", "b", "q"),
        ReplaceRegex("a", r"\9"),
    ]:
        try:
            apply_edit_op(content, bad)
            assert False, bad
        except ValidationError:
            pass

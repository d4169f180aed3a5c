import shlex
from pathlib import Path
from textwrap import indent
from typing import Any, Iterable, Optional


def fmt_lines(values: Iterable[Any], prefix: str = "    ") -> str:
    """
    One value per line, each indented by `prefix`.
    """
    return indent("\n".join(str(value) for value in values), prefix).rstrip()


def fmt_path(path: str | Path, base: Optional[str | Path] = None) -> str:
    """
    Format a path for log messages, quoted if needed. Paths inside `base` are shown
    relative to it.
    """
    path = Path(path)
    if base is not None and path.is_relative_to(base):
        path = path.relative_to(base)
    return shlex.quote(str(path))


def fmt_doc(scope: Any, doc_id: str, path: str) -> str:
    """
    One-line display of a document as `scope id path`.
    """
    return f"{scope} {doc_id} {shlex.quote(path)}"


## Tests


def test_fmt_lines():
    assert fmt_lines(["a", "b"]) == "    a\n    b"
    assert fmt_lines([]) == ""


def test_fmt_path():
    assert fmt_path("some dir/file.md") == "'some dir/file.md'"
    assert fmt_path("/data/docs/a/b.md", base="/data/docs") == "a/b.md"
    assert fmt_path("/elsewhere/b.md", base="/data/docs") == "/elsewhere/b.md"


def test_fmt_doc():
    assert fmt_doc("project", "doc001", "auth/jwt.md") == "project doc001 auth/jwt.md"
    assert fmt_doc("shared", "sdoc002", "my notes.md") == "shared sdoc002 'my notes.md'"

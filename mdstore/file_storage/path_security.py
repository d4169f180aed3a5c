"""
Path security for all file operations within a boundary directory.

All paths supplied by callers are relative to a boundary (a scope root). They are
validated (no empty, absolute, or `..` paths) and then resolved so that the result,
including the real target of any symlink, never leaves the boundary.

Returned relative paths always use `/` separators. Returned absolute paths are native
`Path`s.
"""

import os
import posixpath
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath

from mdstore.errors import BoundaryViolation, ValidationError


@dataclass(frozen=True)
class ResolvedPath:
    abs: Path
    rel: str


def _is_absolute(path: str) -> bool:
    return (
        os.path.isabs(path)
        or path.startswith(("/", "\\"))
        or PureWindowsPath(path).is_absolute()
    )


def validate_relative(path: str) -> str:
    """
    Check a path is non-empty, relative, and has no `..` segments, and return it in
    normalized forward-slash form.
    """
    if not path:
        raise ValidationError("Empty path", {"path": path})

    if _is_absolute(path):
        raise ValidationError("Absolute path not allowed", {"path": path})

    slashed = path.replace("\\", "/")
    if any(segment == ".." for segment in slashed.split("/")):
        raise BoundaryViolation("Path contains ..", {"path": path})

    return posixpath.normpath(slashed)


def is_inside_boundary(boundary: str | Path, target: str | Path) -> bool:
    """
    Check the target is strictly inside the boundary, using relative path analysis
    rather than string prefixes (so `/root2` is not inside `/root`).
    """
    try:
        rel = os.path.relpath(target, boundary)
    except ValueError:
        # Different drives on Windows.
        return False
    if rel in ("", "."):
        return False
    return rel.split(os.sep)[0] != ".." and not os.path.isabs(rel)


def resolve_within_boundary(
    boundary_dir: str | Path, relative_path: str, follow_symlinks: bool = False
) -> ResolvedPath:
    """
    Resolve a relative path within a boundary directory.

    By default the path itself is not dereferenced, but if it (or any existing
    directory along it) is a symlink, its real target must stay within the boundary.
    With `follow_symlinks` the fully resolved real path is returned. A target that does
    not exist yet is fine, since this is also used before creating files.

    Raises `ValidationError` or `BoundaryViolation`.
    """
    validated = validate_relative(relative_path)

    boundary = os.path.abspath(boundary_dir)
    real_boundary = os.path.realpath(boundary)
    abs_path = os.path.normpath(os.path.join(boundary, validated))

    real_path = os.path.realpath(abs_path)
    if real_path != real_boundary and not is_inside_boundary(real_boundary, real_path):
        if os.path.islink(abs_path):
            message = f"Symlink target escapes boundary: '{relative_path}' → '{real_path}'"
        else:
            message = f"Path escapes boundary through a symlink: '{relative_path}' → '{real_path}'"
        raise BoundaryViolation(
            message,
            {"path": relative_path, "resolved": abs_path, "target": real_path},
        )

    if follow_symlinks:
        abs_path, boundary = real_path, real_boundary

    if abs_path != boundary and not is_inside_boundary(boundary, abs_path):
        raise BoundaryViolation(
            f"Path escapes boundary: '{relative_path}' → '{abs_path}'",
            {"path": relative_path, "resolved": abs_path, "boundary": boundary},
        )

    rel = os.path.relpath(abs_path, boundary).replace(os.sep, "/")
    return ResolvedPath(abs=Path(abs_path), rel=rel)


## Tests


def test_validate_relative():
    assert validate_relative("a/b/c.md") == "a/b/c.md"
    assert validate_relative("./a//b/") == "a/b"
    assert validate_relative("a\\b.md") == "a/b.md"

    for bad, error_type in [
        ("", ValidationError),
        ("/etc/passwd", ValidationError),
        ("\\windows\\path", ValidationError),
        ("../../etc/passwd", BoundaryViolation),
        ("a/../b", BoundaryViolation),
        ("a\\..\\b", BoundaryViolation),
    ]:
        try:
            validate_relative(bad)
            assert False, bad
        except error_type:
            pass

    # Names that merely start with dots are fine.
    assert validate_relative("..notes.md") == "..notes.md"


def test_is_inside_boundary():
    assert is_inside_boundary("/root", "/root/a.md")
    assert not is_inside_boundary("/root", "/root")
    assert not is_inside_boundary("/root/a", "/root")
    assert not is_inside_boundary("/root", "/root2/a.md")
    assert not is_inside_boundary("/root", "/etc/passwd")
    assert is_inside_boundary("/root", "/root/..a.md")


def test_resolve_within_boundary(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside.md"
    outside.write_text("secret")

    resolved = resolve_within_boundary(root, "docs/new.md")
    assert resolved.rel == "docs/new.md"
    assert resolved.abs == root / "docs" / "new.md"

    # Symlink escaping the boundary is rejected in both modes.
    (root / "escape.md").symlink_to(outside)
    for follow in (False, True):
        try:
            resolve_within_boundary(root, "escape.md", follow_symlinks=follow)
            assert False
        except BoundaryViolation as e:
            assert e.details["path"] == "escape.md"

    # Symlinked directory escaping the boundary is rejected too.
    (root / "linkdir").symlink_to(tmp_path, target_is_directory=True)
    try:
        resolve_within_boundary(root, "linkdir/outside.md")
        assert False
    except BoundaryViolation:
        pass

    # Symlink within the boundary is fine, and following it returns the real target.
    (root / "real.md").write_text("hi")
    (root / "alias.md").symlink_to(root / "real.md")
    assert resolve_within_boundary(root, "alias.md").rel == "alias.md"
    assert resolve_within_boundary(root, "alias.md", follow_symlinks=True).rel == "real.md"

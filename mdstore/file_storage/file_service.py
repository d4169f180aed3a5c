"""
Primitive file operations confined to one boundary directory.

Every operation goes through `resolve_within_boundary()` before touching the
filesystem, and every OS error is translated with `map_os_error()`. Writes are atomic
(temporary sibling file then rename), so readers never observe a partial write. Writes
and deletes are last-write-wins; freshness checks are the caller's job.
"""

import os
import stat as stat_module
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from strif import atomic_output_file

from mdstore.config.logger import get_logger
from mdstore.config.settings import DOC_EXTENSION
from mdstore.errors import map_os_error, ValidationError
from mdstore.file_storage.path_security import (
    is_inside_boundary,
    resolve_within_boundary,
    ResolvedPath,
)
from mdstore.util.format_utils import fmt_path

log = get_logger(__name__)


@dataclass(frozen=True)
class Replacement:
    old_text: str
    new_text: str


@dataclass(frozen=True)
class ReplacePreview:
    content: str
    applied: int


@dataclass(frozen=True)
class FileDeleteResult:
    deleted: bool


class FileService:
    """
    Read, write, delete, and list files within a boundary directory.
    """

    def __init__(self, boundary_dir: str | Path, doc_extension: str = DOC_EXTENSION):
        if not boundary_dir or not str(boundary_dir).strip():
            raise ValidationError(
                "boundary_dir is required (empty string)", {"boundary_dir": str(boundary_dir)}
            )
        if not os.path.isabs(boundary_dir):
            raise ValidationError(
                f"boundary_dir must be an absolute path: '{boundary_dir}'",
                {"boundary_dir": str(boundary_dir)},
            )
        self.boundary_dir = Path(os.path.abspath(boundary_dir))
        self.doc_extension = doc_extension

    def __str__(self):
        return f"FileService({fmt_path(self.boundary_dir)})"

    def resolve_safe(self, relative_path: str, follow_symlinks: bool = False) -> ResolvedPath:
        """
        Resolve a relative path within the boundary. See `resolve_within_boundary()`.
        """
        return resolve_within_boundary(self.boundary_dir, relative_path, follow_symlinks)

    def exists(self, relative_path: str) -> bool:
        """
        Advisory check whether anything exists at the path. Subject to races, so it
        should not gate mutations.
        """
        return os.path.lexists(self.resolve_safe(relative_path).abs)

    def stat(self, relative_path: str) -> os.stat_result:
        """
        Stats for a file or directory, following symlinks.
        """
        abs_path = self.resolve_safe(relative_path).abs
        try:
            return os.stat(abs_path)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "stat")

    def read_text(self, relative_path: str) -> str:
        """
        Read a UTF-8 text file. The path is resolved following symlinks, so the true
        file is read (and must be inside the boundary).
        """
        abs_path = self.resolve_safe(relative_path, follow_symlinks=True).abs
        try:
            file_stat = os.stat(abs_path)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "stat")

        if not stat_module.S_ISREG(file_stat.st_mode):
            raise ValidationError(
                "Target is not a regular file",
                {"path": relative_path, "resolved": str(abs_path)},
            )

        try:
            with open(abs_path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "read_text")

    def write_text(self, relative_path: str, content: str) -> None:
        """
        Write text atomically, creating parent directories as needed. Always overwrites.
        """
        abs_path = self.resolve_safe(relative_path).abs

        try:
            target_stat: Optional[os.stat_result] = os.stat(abs_path)
        except FileNotFoundError:
            target_stat = None
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "stat")

        if target_stat and not stat_module.S_ISREG(target_stat.st_mode):
            raise ValidationError(
                "Target path exists and is not a regular file",
                {"path": relative_path, "resolved": str(abs_path)},
            )

        try:
            abs_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise map_os_error(e, os.path.dirname(relative_path), str(abs_path.parent), "mkdir")

        try:
            with atomic_output_file(abs_path) as tmp_path:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    f.write(content)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "write_text")

        log.debug(
            "Wrote %s chars: %s", len(content), fmt_path(abs_path, base=self.boundary_dir)
        )

    def delete(
        self, relative_path: str, scope_root: Optional[str | Path] = None
    ) -> FileDeleteResult:
        """
        Delete a file. Idempotent: a missing file gives `deleted=False`.

        If `scope_root` is given, ancestor folders left without documents are then
        removed, walking upward but never removing `scope_root` itself. Cleanup is best
        effort and never fails the delete.
        """
        abs_path = self.resolve_safe(relative_path).abs
        try:
            os.unlink(abs_path)
        except FileNotFoundError:
            return FileDeleteResult(deleted=False)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "delete")

        if scope_root is not None:
            try:
                self.cleanup_empty_ancestors(relative_path, scope_root)
            except Exception as e:
                log.warning("Folder cleanup failed after deleting %s: %s", relative_path, e)

        return FileDeleteResult(deleted=True)

    def list_dir(self, relative_path: str = ".") -> List[str]:
        """
        Sorted names of the entries in a directory within the boundary.
        """
        abs_path = self.resolve_safe(relative_path).abs
        try:
            return sorted(os.listdir(abs_path))
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "list_dir")

    def _is_removable_folder(self, folder: Path) -> bool:
        """
        A folder can go if it holds no documents and no subdirectories. Hidden files
        (`.gitkeep`, `.DS_Store`) don't count. Any other file also keeps the folder, since
        removing it would fail anyway. Unreadable folders are kept.
        """
        try:
            with os.scandir(folder) as entries:
                for entry in entries:
                    if entry.is_dir(follow_symlinks=False):
                        return False
                    if entry.name.endswith(self.doc_extension) or not entry.name.startswith("."):
                        return False
        except OSError as e:
            log.debug("Can't read folder, stopping cleanup: %s: %s", folder, e)
            return False
        return True

    def _try_remove_folder(self, folder: Path) -> bool:
        """
        Remove a folder holding only hidden files. The hidden files are only deleted
        once the parent is writable, so a folder that can't be removed keeps them.
        If an unlink or `rmdir` still fails midway, the files already unlinked are lost.
        """
        if not os.access(folder.parent, os.W_OK | os.X_OK):
            log.debug("Parent not writable, stopping folder cleanup at %s", folder)
            return False
        try:
            for name in os.listdir(folder):
                os.unlink(folder / name)
            os.rmdir(folder)
        except OSError as e:
            # Already gone, not empty, or no permission: stop, the delete itself succeeded.
            log.debug("Stopping folder cleanup at %s: %s", folder, e)
            return False
        log.info("Removed empty folder: %s", fmt_path(folder, base=self.boundary_dir))
        return True

    def cleanup_empty_ancestors(self, relative_path: str, scope_root: str | Path) -> None:
        """
        Remove the folders above a deleted file that are left without documents,
        walking upward and stopping at `scope_root`, which is never removed.
        """
        scope_root = Path(os.path.abspath(scope_root))
        current = self.resolve_safe(relative_path).abs.parent
        while is_inside_boundary(scope_root, current) and is_inside_boundary(
            self.boundary_dir, current
        ):
            if not self._is_removable_folder(current) or not self._try_remove_folder(current):
                break
            current = current.parent

    def preview_replace_first(
        self,
        content: str,
        replacements: Sequence[Replacement | Tuple[str, str]],
        require_all: bool = False,
    ) -> ReplacePreview:
        """
        Apply replacements to in-memory content, in order, each replacing only the first
        occurrence of its `old_text` in the result of the previous one.
        """
        replacements = [r if isinstance(r, Replacement) else Replacement(*r) for r in replacements]
        for i, replacement in enumerate(replacements):
            if not replacement.old_text:
                raise ValidationError(
                    f"Empty old_text in replacement at index {i}", {"index": i}
                )

        new_content = content
        applied = 0
        for replacement in replacements:
            if replacement.old_text in new_content:
                new_content = new_content.replace(replacement.old_text, replacement.new_text, 1)
                applied += 1

        if require_all and applied != len(replacements):
            raise ValidationError(
                f"Only {applied} of {len(replacements)} replacements were applied (require_all)",
                {"applied": applied, "total": len(replacements)},
            )

        return ReplacePreview(content=new_content, applied=applied)

    def apply_replace_first(
        self,
        relative_path: str,
        replacements: Sequence[Replacement | Tuple[str, str]],
        require_all: bool = False,
    ) -> int:
        """
        Apply first-occurrence replacements to a file and write it atomically. Nothing is
        written if no replacement matched. Returns the number applied.
        """
        content = self.read_text(relative_path)
        preview = self.preview_replace_first(content, replacements, require_all)
        if preview.applied:
            self.write_text(relative_path, preview.content)
        return preview.applied


## Tests


def test_file_service_basics(tmp_path):
    fs = FileService(tmp_path)
    fs.write_text("a/b/c.md", "hello")
    assert fs.read_text("a/b/c.md") == "hello"
    assert fs.exists("a/b/c.md")
    assert fs.list_dir("a") == ["b"]
    assert fs.stat("a/b").st_size >= 0

    fs.write_text("a/b/c.md", "replaced")
    assert fs.read_text("a/b/c.md") == "replaced"
    # No temporary files left behind.
    assert fs.list_dir("a/b") == ["c.md"]

    assert fs.delete("a/b/c.md") == FileDeleteResult(deleted=True)
    assert fs.delete("a/b/c.md") == FileDeleteResult(deleted=False)


def test_file_service_errors(tmp_path):
    from mdstore.errors import BoundaryViolation, NotFound

    fs = FileService(tmp_path)
    try:
        fs.read_text("missing.md")
        assert False
    except NotFound as e:
        assert e.details["path"] == "missing.md"

    (tmp_path / "dir.md").mkdir()
    for op in (lambda: fs.read_text("dir.md"), lambda: fs.write_text("dir.md", "x")):
        try:
            op()
            assert False
        except ValidationError:
            pass

    try:
        fs.write_text("../escape.md", "x")
        assert False
    except BoundaryViolation:
        pass

    for bad_boundary in ["", "relative/dir"]:
        try:
            FileService(bad_boundary)
            assert False
        except ValidationError:
            pass


def test_replace_first(tmp_path):
    fs = FileService(tmp_path)
    preview = fs.preview_replace_first("a a b", [("a", "x"), ("b", "y"), ("z", "q")])
    assert preview == ReplacePreview(content="x a y", applied=2)

    try:
        fs.preview_replace_first("a", [("", "x")])
        assert False
    except ValidationError:
        pass

    try:
        fs.preview_replace_first("a", [("a", "b"), ("z", "q")], require_all=True)
        assert False
    except ValidationError as e:
        assert e.details == {"applied": 1, "total": 2}

    fs.write_text("doc.md", "one two")
    assert fs.apply_replace_first("doc.md", [Replacement("two", "three")]) == 1
    assert fs.read_text("doc.md") == "one three"
    assert fs.apply_replace_first("doc.md", [Replacement("zzz", "q")]) == 0

"""
Directory operations confined to a boundary directory, the counterpart of
`FileService` for folders.
"""

import os
import posixpath
import shutil
import stat as stat_module
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from slugify import slugify

from mdstore.errors import DirectoryNotEmpty, map_os_error, ValidationError
from mdstore.file_storage.path_security import (
    is_inside_boundary,
    resolve_within_boundary,
    ResolvedPath,
    validate_relative,
)

NOT_FOUND = "NOT_FOUND"
NOT_DIR = "NOT_DIR"


@dataclass(frozen=True)
class DeleteDirResult:
    deleted: bool
    reason: Optional[Literal["NOT_FOUND", "NOT_DIR"]] = None


class FolderService:
    def __init__(self, boundary_dir: str | Path):
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

    def __str__(self):
        return f"FolderService({self.boundary_dir})"

    @staticmethod
    def normalize_name(name: str) -> str:
        """
        Filesystem-friendly folder name: lowercase ASCII letters, digits, `-` and `_`.
        This is a naming convention, not a security check.
        """
        normalized = slugify(name, separator="-", regex_pattern=r"[^-a-z0-9_]+")
        if not normalized:
            raise ValidationError(
                f"Folder name normalizes to nothing: '{name}'", {"name": name}
            )
        return normalized

    def resolve(self, relative_path: str, follow_symlinks: bool = False) -> ResolvedPath:
        return resolve_within_boundary(self.boundary_dir, relative_path, follow_symlinks)

    def is_inside_boundary(self, target_abs: str | Path) -> bool:
        if not os.path.isabs(target_abs):
            raise ValidationError(
                f"target must be an absolute path: '{target_abs}'", {"target": str(target_abs)}
            )
        return is_inside_boundary(self.boundary_dir, os.path.abspath(target_abs))

    def ensure_dir(self, relative_path: str) -> Path:
        abs_path = self.resolve(relative_path).abs
        try:
            os.makedirs(abs_path, exist_ok=True)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "ensure_dir")
        return abs_path

    def parent_dir(self, relative_path: str) -> str:
        """
        Parent of a validated relative path: `a/b` gives `a`, `a` gives `.`.
        """
        return posixpath.dirname(validate_relative(relative_path)) or "."

    def stat(self, relative_path: str) -> os.stat_result:
        abs_path = self.resolve(relative_path).abs
        try:
            return os.stat(abs_path)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "stat")

    def delete_dir(
        self, relative_path: str, recursive: bool = False, require_empty: bool = False
    ) -> DeleteDirResult:
        """
        Delete a directory, never the boundary itself. Idempotent: a missing directory
        gives `deleted=False` with reason `NOT_FOUND`. Without `recursive`, a non-empty
        directory raises `DirectoryNotEmpty`.
        """
        if recursive and require_empty:
            raise ValidationError(
                "require_empty and recursive are mutually exclusive", {"path": relative_path}
            )

        abs_path = self.resolve(relative_path).abs
        details = {"path": relative_path, "resolved": str(abs_path)}
        if abs_path == self.boundary_dir:
            raise ValidationError(
                f"Cannot delete boundary root: '{relative_path}' → '{abs_path}'",
                {**details, "boundary": str(self.boundary_dir)},
            )

        try:
            dir_stat = os.stat(abs_path)
        except FileNotFoundError:
            return DeleteDirResult(deleted=False, reason=NOT_FOUND)
        except OSError as e:
            raise map_os_error(e, relative_path, str(abs_path), "stat")

        if not stat_module.S_ISDIR(dir_stat.st_mode):
            return DeleteDirResult(deleted=False, reason=NOT_DIR)

        try:
            if recursive:
                shutil.rmtree(abs_path)
            else:
                os.rmdir(abs_path)
        except FileNotFoundError:
            return DeleteDirResult(deleted=False, reason=NOT_FOUND)
        except OSError as e:
            error = map_os_error(e, relative_path, str(abs_path), "delete_dir")
            if isinstance(error, DirectoryNotEmpty):
                raise DirectoryNotEmpty(
                    f"Directory not empty: '{relative_path}' → '{abs_path}'", error.details
                )
            raise error

        return DeleteDirResult(deleted=True)


## Tests


def test_normalize_name():
    assert FolderService.normalize_name("My Stories!") == "my-stories"
    assert FolderService.normalize_name("auth_v2") == "auth_v2"
    try:
        FolderService.normalize_name("!!!")
        assert False
    except ValidationError:
        pass


def test_folder_service(tmp_path):
    folders = FolderService(tmp_path)
    folders.ensure_dir("a/b")
    folders.ensure_dir("a/b")
    assert stat_module.S_ISDIR(folders.stat("a/b").st_mode)
    assert folders.parent_dir("a/b") == "a"
    assert folders.parent_dir("a") == "."
    assert folders.is_inside_boundary(tmp_path / "a")
    assert not folders.is_inside_boundary(tmp_path.parent)

    try:
        folders.delete_dir("a")
        assert False
    except DirectoryNotEmpty as e:
        assert e.details["path"] == "a"

    assert folders.delete_dir("a/b") == DeleteDirResult(deleted=True)
    assert folders.delete_dir("a/b") == DeleteDirResult(deleted=False, reason=NOT_FOUND)

    (tmp_path / "a" / "file.md").write_text("x")
    assert folders.delete_dir("a/file.md") == DeleteDirResult(deleted=False, reason=NOT_DIR)
    assert folders.delete_dir("a", recursive=True) == DeleteDirResult(deleted=True)

    try:
        folders.delete_dir(".")
        assert False
    except ValidationError:
        pass

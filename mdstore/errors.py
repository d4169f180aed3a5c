"""
Unified hierarchy of error types. These inherit from standard errors like
ValueError and FileNotFoundError but are more fine-grained, and each carries an
`ErrorKind` plus structured details (paths, scope, hashes) for callers that need
to translate failures into exit codes or tool-error payloads.
"""

import errno
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BOUNDARY_VIOLATION = "BOUNDARY_VIOLATION"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    DIRECTORY_NOT_EMPTY = "DIRECTORY_NOT_EMPTY"
    HASH_MISMATCH = "HASH_MISMATCH"
    FS_ERROR = "FS_ERROR"

    def __str__(self):
        return self.value


class StoreError(ValueError):
    """Base class for document store errors."""

    kind: ErrorKind = ErrorKind.FS_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.kind.value}: {self.message!r}, {self.details!r})"


class ValidationError(StoreError):
    """Malformed address, absolute or empty path, ID-shaped path, bad edit op."""

    kind = ErrorKind.VALIDATION_ERROR


class BoundaryViolation(StoreError):
    """A path (or the target of a symlink) would escape the scope root."""

    kind = ErrorKind.BOUNDARY_VIOLATION


class NotFound(StoreError, FileNotFoundError):
    """No index entry or no file for the target."""

    kind = ErrorKind.NOT_FOUND


class AlreadyExists(StoreError, FileExistsError):
    """A document already occupies the target path."""

    kind = ErrorKind.ALREADY_EXISTS


class DirectoryNotEmpty(StoreError):
    """Raised when a directory operation hits a non-empty directory."""

    kind = ErrorKind.DIRECTORY_NOT_EMPTY


class HashMismatch(StoreError):
    """Optimistic concurrency check failed: content changed since it was read."""

    kind = ErrorKind.HASH_MISMATCH


class FsError(StoreError):
    """Permissions, busy resources, or any unclassified OS error."""

    kind = ErrorKind.FS_ERROR


ERROR_CLASSES: Dict[ErrorKind, Type[StoreError]] = {
    cls.kind: cls
    for cls in [
        ValidationError,
        BoundaryViolation,
        NotFound,
        AlreadyExists,
        DirectoryNotEmpty,
        HashMismatch,
        FsError,
    ]
}


def store_error(
    kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None
) -> StoreError:
    """
    Construct the error class for a given kind.
    """
    return ERROR_CLASSES[kind](message, details)


# OS error codes and the kind and message prefix they translate to.
_OS_ERROR_TABLE: Dict[int, Tuple[ErrorKind, str]] = {
    errno.ENOENT: (ErrorKind.NOT_FOUND, "File or directory not found"),
    errno.ENOTEMPTY: (ErrorKind.DIRECTORY_NOT_EMPTY, "Directory not empty"),
    errno.ENOTDIR: (ErrorKind.VALIDATION_ERROR, "Invalid path type (not a directory)"),
    errno.EISDIR: (ErrorKind.VALIDATION_ERROR, "Invalid path type (is a directory)"),
    errno.EACCES: (ErrorKind.FS_ERROR, "Permission denied"),
    errno.EPERM: (ErrorKind.FS_ERROR, "Permission denied"),
    errno.EBUSY: (ErrorKind.FS_ERROR, "Resource busy or locked"),
}


def map_os_error(
    error: OSError,
    path: Optional[str] = None,
    resolved: Optional[str] = None,
    operation: Optional[str] = None,
) -> StoreError:
    """
    Translate an OS error into a `StoreError`. This is the single translation table
    for filesystem failures. Unrecognized errors become `FsError`.
    """
    kind, prefix = _OS_ERROR_TABLE.get(
        error.errno or -1, (ErrorKind.FS_ERROR, "Filesystem error")
    )
    if path and resolved:
        message = f"{prefix}: '{path}' → '{resolved}'"
    elif path:
        message = f"{prefix}: '{path}'"
    else:
        message = prefix

    details: Dict[str, Any] = {
        "path": path,
        "resolved": resolved,
        "operation": operation,
        "original_code": errno.errorcode.get(error.errno or -1),
    }
    if kind == ErrorKind.FS_ERROR and error.strerror:
        details["reason"] = error.strerror
    return store_error(kind, message, {k: v for k, v in details.items() if v is not None})


NONFATAL_EXCEPTIONS: Tuple[Type[Exception], ...] = (StoreError, FileNotFoundError, IOError)
"""Exceptions that are not fatal and usually don't merit a full stack trace."""


def is_fatal(exception: Exception) -> bool:
    for e in NONFATAL_EXCEPTIONS:
        if isinstance(exception, e):
            return False
    return True


## Tests


def test_map_os_error():
    err = map_os_error(
        FileNotFoundError(errno.ENOENT, "No such file"), path="a/b.md", resolved="/r/a/b.md"
    )
    assert isinstance(err, NotFound)
    assert isinstance(err, FileNotFoundError)
    assert err.kind == ErrorKind.NOT_FOUND
    assert str(err) == "File or directory not found: 'a/b.md' → '/r/a/b.md'"
    assert err.details["original_code"] == "ENOENT"

    assert isinstance(map_os_error(OSError(errno.ENOTEMPTY, "x")), DirectoryNotEmpty)
    assert isinstance(map_os_error(OSError(errno.EISDIR, "x")), ValidationError)
    assert isinstance(map_os_error(OSError(errno.ENOTDIR, "x")), ValidationError)
    assert isinstance(map_os_error(PermissionError(errno.EACCES, "x")), FsError)
    assert isinstance(map_os_error(OSError(errno.EBUSY, "x")), FsError)

    unknown = map_os_error(OSError(errno.ENOSPC, "No space left"), path="x.md")
    assert unknown.kind == ErrorKind.FS_ERROR
    assert unknown.details["reason"] == "No space left"


def test_is_fatal():
    assert not is_fatal(HashMismatch("stale"))
    assert is_fatal(RuntimeError("boom"))

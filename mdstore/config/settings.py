import os
import threading
from contextlib import contextmanager
from enum import Enum
from logging import DEBUG, ERROR, INFO, WARNING
from pathlib import Path

from pydantic.dataclasses import dataclass


APP_NAME = "mdstore"

DOT_DIR = ".mdstore"

PROJECT_ROOT_ENV = "MDSTORE_PROJECT_ROOT"
SHARED_ROOT_ENV = "MDSTORE_SHARED_ROOT"
CONSOLE_LOG_LEVEL_ENV = "MDSTORE_LOG_LEVEL"
FILE_LOG_LEVEL_ENV = "MDSTORE_FILE_LOG_LEVEL"

DEFAULT_PROJECT_ROOT = f"{DOT_DIR}/project"
DEFAULT_SHARED_ROOT = f"~/{DOT_DIR}/shared"

INDEX_FILENAME = ".index.json"

DOC_EXTENSION = ".md"

DOCS_SUBDIR = "docs"
TEMPLATES_SUBDIR = "templates"
CARTRIDGES_SUBDIR = "cartridges"


def resolve_and_create_dirs(path: Path | str, is_dir: bool = False) -> Path:
    """
    Resolve a path to an absolute path, handling ~ for the home directory
    and creating any missing parent directories.
    """
    full_path = Path(path).expanduser().resolve()
    if not full_path.exists():
        if is_dir:
            os.makedirs(full_path, exist_ok=True)
        else:
            os.makedirs(full_path.parent, exist_ok=True)
    return full_path


def default_project_root() -> Path:
    """
    Project scope root: `$MDSTORE_PROJECT_ROOT` or `.mdstore/project` under the
    current directory.
    """
    env_root = os.environ.get(PROJECT_ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser().absolute()
    return Path(".").absolute() / DEFAULT_PROJECT_ROOT


def default_shared_root() -> Path:
    """
    Shared (user-wide) scope root: `$MDSTORE_SHARED_ROOT` or `~/.mdstore/shared`.
    """
    env_root = os.environ.get(SHARED_ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser().absolute()
    return Path(DEFAULT_SHARED_ROOT).expanduser().absolute()


class LogLevel(Enum):
    debug = DEBUG
    info = INFO
    warning = WARNING
    message = WARNING  # Same as warning, just for important console messages.
    error = ERROR

    @classmethod
    def parse(cls, level_str: str):
        canon_name = level_str.strip().lower()
        if canon_name == "warn":
            canon_name = "warning"
        try:
            return cls[canon_name]
        except KeyError:
            valid = ", ".join(cls.__members__)
            raise ValueError(f"Invalid log level: `{level_str}` (expected one of: {valid})")

    def __str__(self):
        return self.name


def env_log_level(env_var: str, default: LogLevel) -> LogLevel:
    value = os.environ.get(env_var)
    return LogLevel.parse(value) if value else default


@dataclass
class Settings:
    project_root: Path
    """Root directory of the project (workspace-local) scope."""

    shared_root: Path
    """Root directory of the shared (user-wide) scope."""

    index_filename: str
    """Name of the per-scope index file, stored at the root of each store."""

    doc_extension: str
    """Extension of document files. Governs which files keep a folder alive on cleanup."""

    console_log_level: LogLevel
    """The log level for console-based logging."""

    file_log_level: LogLevel
    """The log level for file-based logging."""


# Initial default settings.
_settings = Settings(
    project_root=default_project_root(),
    shared_root=default_shared_root(),
    index_filename=INDEX_FILENAME,
    doc_extension=DOC_EXTENSION,
    file_log_level=env_log_level(FILE_LOG_LEVEL_ENV, LogLevel.info),
    console_log_level=env_log_level(CONSOLE_LOG_LEVEL_ENV, LogLevel.warning),
)


def global_settings() -> Settings:
    """
    Read access to global settings.
    """
    return _settings


_settings_lock = threading.RLock()


@contextmanager
def update_global_settings():
    """
    Context manager for thread-safe updates to global settings.
    """
    with _settings_lock:
        yield _settings


## Tests


def test_log_level_parse(monkeypatch):
    import pytest

    assert LogLevel.parse("WARN") == LogLevel.warning
    assert LogLevel.parse(" debug ") == LogLevel.debug
    with pytest.raises(ValueError, match="Invalid log level"):
        LogLevel.parse("loud")

    monkeypatch.setenv(CONSOLE_LOG_LEVEL_ENV, "info")
    assert env_log_level(CONSOLE_LOG_LEVEL_ENV, LogLevel.warning) == LogLevel.info
    monkeypatch.delenv(CONSOLE_LOG_LEVEL_ENV)
    assert env_log_level(CONSOLE_LOG_LEVEL_ENV, LogLevel.warning) == LogLevel.warning


def test_update_global_settings():
    original = global_settings().index_filename
    with update_global_settings() as settings:
        settings.index_filename = ".test-index.json"
    try:
        assert global_settings().index_filename == ".test-index.json"
    finally:
        with update_global_settings() as settings:
            settings.index_filename = original


def test_default_roots_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv(PROJECT_ROOT_ENV, str(tmp_path / "p"))
    monkeypatch.setenv(SHARED_ROOT_ENV, str(tmp_path / "s"))
    assert default_project_root() == tmp_path / "p"
    assert default_shared_root() == tmp_path / "s"

    monkeypatch.delenv(PROJECT_ROOT_ENV)
    assert default_project_root() == Path(".").absolute() / ".mdstore/project"

"""
Results returned by store operations. These are pydantic models so callers (CLIs,
tool servers) can serialize them directly with `model_dump()`.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from mdstore.errors import ErrorKind, StoreError
from mdstore.model.scopes import Scope


class CreateResult(BaseModel):
    id: str
    path: str
    scope: Scope
    hash: str


class ReadResult(BaseModel):
    id: str
    path: str
    scope: Scope
    content: str
    hash: str
    front_matter: Optional[Dict[str, Any]] = None
    body: str = ""


class EditResult(BaseModel):
    id: str
    path: str
    scope: Scope
    applied: int
    """Number of edit ops that matched. Nothing is written if this is zero."""
    hash: str
    """Hash of the content after the edit."""


class DeleteResult(BaseModel):
    deleted: bool
    id: Optional[str] = None
    path: Optional[str] = None
    scope: Optional[Scope] = None


class Override(str, Enum):
    overrides = "overrides"
    """A project item at the same path as a shared one, and shadowing it."""

    overridden = "overridden"
    """A shared item shadowed by a project item at the same path."""


class ListItem(BaseModel):
    scope: Scope
    id: str
    path: str
    modified_at: Optional[datetime] = None
    synopsis: Optional[str] = None
    hash: Optional[str] = None
    override: Optional[Override] = None


class ReadError(BaseModel):
    address: str
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = {}

    @classmethod
    def from_error(cls, address: Any, error: StoreError) -> "ReadError":
        return cls(
            address=str(address), kind=error.kind, message=error.message, details=error.details
        )


class MultiReadResult(BaseModel):
    results: List[ReadResult] = []
    errors: List[ReadError] = []


class MoveResult(BaseModel):
    old_id: str
    new_id: str
    old_path: str
    path: str
    old_scope: Scope
    scope: Scope


## Tests


def test_models_serialize():
    from mdstore.errors import NotFound

    item = ListItem(scope=Scope.shared, id="sdoc001", path="a.md", override=Override.overridden)
    assert item.model_dump(mode="json", exclude_none=True) == {
        "scope": "shared",
        "id": "sdoc001",
        "path": "a.md",
        "override": "overridden",
    }

    error = ReadError.from_error("doc009", NotFound("No doc with ID 'doc009'", {"id": "doc009"}))
    assert error.kind == ErrorKind.NOT_FOUND
    assert MultiReadResult(errors=[error]).model_dump()["errors"][0]["details"] == {"id": "doc009"}

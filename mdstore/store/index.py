"""
The per-scope index: a bidirectional mapping between IDs and paths, persisted as
pretty-printed JSON at the root of each store:

    {"id": {"doc001": {"path": "auth/jwt.md"}}, "pathToId": {"auth/jwt.md": "doc001"}}

The index is authoritative for what documents exist. All lookups go through one of
the two maps, never a scan.
"""

import json
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from mdstore.config.logger import get_logger
from mdstore.config.settings import INDEX_FILENAME
from mdstore.errors import FsError, NotFound
from mdstore.file_storage.file_service import FileService
from mdstore.model.addresses import EntityAddressResolver
from mdstore.model.scopes import Scope

log = get_logger(__name__)


class IndexEntry(BaseModel):
    path: str


class ScopeIndex(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ids: Dict[str, IndexEntry] = Field(default_factory=dict, alias="id")
    path_to_id: Dict[str, str] = Field(default_factory=dict, alias="pathToId")

    def path_for(self, id: str) -> Optional[str]:
        entry = self.ids.get(id)
        return entry.path if entry else None

    def id_for(self, path: str) -> Optional[str]:
        return self.path_to_id.get(path)

    def add(self, id: str, path: str) -> None:
        self.ids[id] = IndexEntry(path=path)
        self.path_to_id[path] = id

    def remove(self, id: Optional[str] = None, path: Optional[str] = None) -> bool:
        """
        Remove an entry given its id, its path, or both. Both sides of the mapping are
        cleaned, so no dangling half-entries remain. Returns whether anything was removed.
        """
        if id is None and path is not None:
            id = self.path_to_id.get(path)
        if path is None and id is not None:
            path = self.path_for(id)

        removed = False
        if id is not None and id in self.ids:
            del self.ids[id]
            removed = True
        if path is not None and path in self.path_to_id:
            del self.path_to_id[path]
            removed = True
        return removed

    def is_consistent(self) -> bool:
        """
        Check both maps are exact inverses of each other.
        """
        return len(self.ids) == len(self.path_to_id) and all(
            self.path_to_id.get(entry.path) == id for id, entry in self.ids.items()
        )

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=2, ensure_ascii=False)

    @classmethod
    def from_json_obj(cls, data: Any) -> Tuple["ScopeIndex", bool]:
        """
        Load from parsed JSON, migrating the legacy flat `{id: path}` format if needed.
        If only one of the two maps is present, the other is rebuilt from it. Returns
        the index and whether it was migrated or rebuilt, and so should be written back.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Index must be a JSON object, got {type(data).__name__}")

        if "id" in data and "pathToId" in data:
            return cls.model_validate(data), False
        if "id" in data:
            index = cls.model_validate(data)
            index.path_to_id = {entry.path: id for id, entry in index.ids.items()}
            return index, True
        if "pathToId" in data:
            index = cls.model_validate(data)
            index.ids = {id: IndexEntry(path=path) for path, id in index.path_to_id.items()}
            return index, True

        index = cls()
        for id, path in data.items():
            if not isinstance(path, str):
                log.warning("Skipping invalid legacy index entry: %s: %r", id, path)
                continue
            index.add(id, path)
        return index, True


class IndexStore:
    """
    Reads and writes the index of one store (one entity type in one scope).
    """

    def __init__(
        self,
        file_service: FileService,
        scope: Scope,
        addresses: EntityAddressResolver,
        index_filename: str = INDEX_FILENAME,
    ):
        self.file_service = file_service
        self.scope = scope
        self.addresses = addresses
        self.index_filename = index_filename

    def __str__(self):
        return f"IndexStore({self.scope}, {self.file_service.boundary_dir / self.index_filename})"

    def read(self) -> ScopeIndex:
        """
        Load the index. A missing index file is an empty index. A legacy flat index, or
        one missing a map, is brought to the current format and written back.
        """
        try:
            text = self.file_service.read_text(self.index_filename)
        except NotFound:
            return ScopeIndex()

        try:
            index, migrated = ScopeIndex.from_json_obj(json.loads(text))
        except ValueError as e:
            # JSONDecodeError and pydantic's ValidationError are both ValueErrors.
            raise FsError(
                f"Corrupt index file: '{self.index_filename}': {e}",
                {"path": self.index_filename, "scope": self.scope.value},
            )

        if migrated:
            self.write(index)
            log.info(
                "Rewrote %s index in current format: %s entries",
                self.scope,
                len(index.ids),
            )

        return index

    def write(self, index: ScopeIndex) -> None:
        self.file_service.write_text(self.index_filename, index.to_json())

    def next_id(self, index: ScopeIndex) -> str:
        """
        Mint the next ID: one more than the highest existing number for this scope.
        """
        numbers = [
            self.addresses.id_number(id)
            for id in index.ids
            if self.addresses.validate_id_for_scope(id, self.scope)
        ]
        return self.addresses.format_id(self.scope, max(filter(None, numbers), default=0) + 1)


## Tests


def test_scope_index():
    index = ScopeIndex()
    index.add("doc001", "a/b.md")
    index.add("doc002", "c.md")
    assert index.path_for("doc001") == "a/b.md"
    assert index.id_for("c.md") == "doc002"
    assert index.is_consistent()

    assert index.remove(path="a/b.md")
    assert not index.remove(id="doc001")
    assert index.is_consistent()
    assert json.loads(index.to_json()) == {
        "id": {"doc002": {"path": "c.md"}},
        "pathToId": {"c.md": "doc002"},
    }


def test_from_json_obj():
    index, migrated = ScopeIndex.from_json_obj({"doc001": "a/b.md"})
    assert migrated
    assert index.model_dump(by_alias=True) == {
        "id": {"doc001": {"path": "a/b.md"}},
        "pathToId": {"a/b.md": "doc001"},
    }

    again, migrated = ScopeIndex.from_json_obj(json.loads(index.to_json()))
    assert not migrated
    assert again == index

    only_ids, rebuilt = ScopeIndex.from_json_obj({"id": {"doc001": {"path": "a/b.md"}}})
    assert rebuilt
    assert only_ids.id_for("a/b.md") == "doc001"
    assert only_ids.is_consistent()

    only_paths, rebuilt = ScopeIndex.from_json_obj({"pathToId": {"a/b.md": "doc001"}})
    assert rebuilt
    assert only_paths.path_for("doc001") == "a/b.md"

    empty, migrated = ScopeIndex.from_json_obj({"id": {}, "pathToId": {}})
    assert not migrated and empty == ScopeIndex()


def test_index_store(tmp_path):
    from mdstore.model.addresses import DOC_ADDRESSES

    fs = FileService(tmp_path)
    store = IndexStore(fs, Scope.shared, DOC_ADDRESSES)
    index = store.read()
    assert store.next_id(index) == "sdoc001"

    index.add("sdoc009", "x.md")
    index.add("doc500", "stray.md")
    store.write(index)
    assert store.next_id(store.read()) == "sdoc010"

    fs.write_text(INDEX_FILENAME, "{not json")
    try:
        store.read()
        assert False
    except FsError as e:
        assert e.details["scope"] == "shared"

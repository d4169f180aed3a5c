"""
The document store: create, read, edit, delete, list and move Markdown documents
across the project and shared scopes.

Each scope keeps its documents under its own root directory, with an index file
mapping IDs to paths at that root. The index is authoritative: listing walks the
index, not the directory tree, and every lookup is a single map access.

Document content is never locked. Callers that need to detect concurrent changes
pass the content hash they last saw as `expected_hash`; a mismatch fails the edit or
delete before anything is modified. Index updates within one process are serialized.
"""

import functools
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

import regex

from mdstore.config.logger import get_logger
from mdstore.config.settings import DOC_EXTENSION, INDEX_FILENAME
from mdstore.config.text_styles import EMOJI_DELETED, EMOJI_SAVED
from mdstore.errors import AlreadyExists, HashMismatch, NotFound, StoreError, ValidationError
from mdstore.file_storage.file_service import FileService
from mdstore.file_storage.folder_service import FolderService
from mdstore.file_storage.frontmatter import split_front_matter, synopsis_of
from mdstore.file_storage.path_security import validate_relative
from mdstore.model.addresses import (
    Address,
    DOC_ADDRESSES,
    EntityAddressResolver,
    IdAddress,
    parse_address,
    PathAddress,
)
from mdstore.model.doc_model import (
    CreateResult,
    DeleteResult,
    EditResult,
    ListItem,
    MoveResult,
    MultiReadResult,
    Override,
    ReadError,
    ReadResult,
)
from mdstore.model.edit_ops import apply_edit_ops, EditOp, parse_edit_ops
from mdstore.model.scopes import Scope
from mdstore.store.index import IndexStore, ScopeIndex
from mdstore.util.format_utils import fmt_doc, fmt_lines
from mdstore.util.hash_utils import hash_text
from mdstore.util.log_calls import log_calls

log = get_logger(__name__)

T = TypeVar("T")

AddressInput = Address | Dict[str, Any] | str

_INVALID_PATH_CHARS = regex.compile(r'[<>:"|?*\x00]')


def synchronized(method: Callable[..., T]) -> Callable[..., T]:
    """
    Serialize index read-modify-write sequences within one store.
    """

    @functools.wraps(method)
    def synchronized_method(self, *args: Any, **kwargs: Any) -> T:
        with self._lock:
            return method(self, *args, **kwargs)

    return synchronized_method


def normalize_doc_path(path: str) -> str:
    """
    Validate and normalize a document path: relative, non-empty, no `..` segments, no
    characters that are invalid in filenames on common platforms. Backslashes become
    `/` and leading or trailing slashes are dropped.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("Path cannot be empty", {"path": path})
    if path.startswith("/"):
        raise ValidationError("Path must be relative (no leading slash)", {"path": path})

    normalized = path.replace("\\", "/").strip("/")
    if _INVALID_PATH_CHARS.search(normalized):
        raise ValidationError("Path contains invalid characters", {"path": path})

    # Rejects `..` segments as a boundary violation.
    return validate_relative(normalized)


@dataclass
class ScopeStorage:
    """
    Everything stored for one entity type in one scope, under one root directory.
    """

    scope: Scope
    root: Path
    files: FileService
    folders: FolderService
    index: IndexStore


class DocStore:
    """
    Store for one entity type (docs, templates, or cartridges) over both scopes.
    """

    def __init__(
        self,
        roots: Mapping[Scope, Path],
        addresses: EntityAddressResolver = DOC_ADDRESSES,
        entity_name: str = "doc",
        index_filename: str = INDEX_FILENAME,
        doc_extension: str = DOC_EXTENSION,
    ):
        self.addresses = addresses
        self.entity_name = entity_name
        self.index_filename = index_filename
        self._lock = threading.RLock()
        self.storages: Dict[Scope, ScopeStorage] = {}
        for scope in Scope:
            root = Path(roots[scope])
            files = FileService(root, doc_extension=doc_extension)
            self.storages[scope] = ScopeStorage(
                scope=scope,
                root=files.boundary_dir,
                files=files,
                folders=FolderService(root),
                index=IndexStore(files, scope, addresses, index_filename),
            )

    def __str__(self):
        roots = ", ".join(f"{s.scope}={s.root}" for s in self.storages.values())
        return f"DocStore({self.entity_name}: {roots})"

    def storage(self, scope: Scope | str) -> ScopeStorage:
        return self.storages[Scope.parse(scope)]

    def read_index(self, scope: Scope | str) -> ScopeIndex:
        return self.storage(scope).index.read()

    def _normalize_path(self, path: str) -> str:
        """
        Normalize a document path, also rejecting the path of the index file itself.
        """
        normalized = normalize_doc_path(path)
        if normalized == self.index_filename:
            raise ValidationError(
                f"Path '{normalized}' is reserved for the {self.entity_name} index",
                {"path": path},
            )
        return normalized

    def _parse(self, address: AddressInput, scope: Optional[Scope | str] = None) -> Address:
        return parse_address(address, self.addresses, scope)

    def resolve_scope(self, address: Address) -> Scope:
        """
        Scope of an address. IDs carry their scope in their prefix. Paths without an
        explicit scope are looked up in the project index, then the shared index, and
        default to project if in neither.
        """
        if isinstance(address, IdAddress):
            detected = self.addresses.detect_scope_from_id(address.id)
            if detected is None:
                raise ValidationError(
                    f"Invalid {self.entity_name} ID format: '{address.id}'",
                    {"id": address.id},
                )
            if address.scope and address.scope != detected:
                raise ValidationError(
                    f"ID '{address.id}' is a {detected} ID but scope {address.scope} was given",
                    {"id": address.id, "scope": address.scope.value},
                )
            return detected

        if address.scope:
            return address.scope

        path = self._normalize_path(address.path)
        for scope in (Scope.project, Scope.shared):
            if self.read_index(scope).id_for(path):
                return scope
        return Scope.project

    def _locate(self, address: Address) -> Tuple[Scope, str, str]:
        """
        Resolve an address to its scope, ID and path via the index, or raise `NotFound`.
        """
        scope = self.resolve_scope(address)
        index = self.read_index(scope)
        if isinstance(address, IdAddress):
            path = index.path_for(address.id)
            if path is None:
                raise NotFound(
                    f"No {self.entity_name} with ID '{address.id}' in scope {scope}",
                    {"id": address.id, "scope": scope.value},
                )
            return scope, address.id, path

        path = self._normalize_path(address.path)
        id = index.id_for(path)
        if id is None:
            raise NotFound(
                f"No {self.entity_name} at path '{path}' in scope {scope}",
                {"path": path, "scope": scope.value},
            )
        return scope, id, path

    @log_calls(level="debug")
    @synchronized
    def create(
        self, address: AddressInput, content: str, scope: Optional[Scope | str] = None
    ) -> CreateResult:
        """
        Create a document at a path, minting a new ID. The path must not be in use in
        the resolved scope and must not look like an ID.
        """
        addr = self._parse(address, scope)
        if isinstance(addr, IdAddress):
            raise ValidationError(
                f"Cannot create {self.entity_name} with path '{addr.id}': matches ID pattern",
                {"path": addr.id},
            )

        path = self._normalize_path(addr.path)
        if self.addresses.is_entity_id(path):
            raise ValidationError(
                f"Cannot create {self.entity_name} with path '{path}': matches ID pattern",
                {"path": path},
            )

        resolved_scope = self.resolve_scope(PathAddress(path, addr.scope))
        storage = self.storage(resolved_scope)
        index = storage.index.read()

        existing_id = index.id_for(path)
        if existing_id or storage.files.exists(path):
            raise AlreadyExists(
                f"{self.entity_name.capitalize()} already exists at path '{path}' "
                f"in scope {resolved_scope}",
                {"path": path, "scope": resolved_scope.value, "id": existing_id},
            )

        id = storage.index.next_id(index)
        parent = storage.folders.parent_dir(path)
        if parent != ".":
            storage.folders.ensure_dir(parent)
        storage.files.write_text(path, content)
        index.add(id, path)
        storage.index.write(index)

        log.info("%s Created %s", EMOJI_SAVED, fmt_doc(resolved_scope, id, path))
        return CreateResult(id=id, path=path, scope=resolved_scope, hash=hash_text(content))

    @log_calls(level="debug")
    def read(self, address: AddressInput, scope: Optional[Scope | str] = None) -> ReadResult:
        doc_scope, id, path = self._locate(self._parse(address, scope))
        content = self.storage(doc_scope).files.read_text(path)
        split = split_front_matter(content)
        return ReadResult(
            id=id,
            path=path,
            scope=doc_scope,
            content=content,
            hash=hash_text(content),
            front_matter=split.front_matter,
            body=split.body,
        )

    def read_many(self, addresses: Iterable[AddressInput]) -> MultiReadResult:
        """
        Read several documents, collecting per-document errors instead of failing.
        """
        result = MultiReadResult()
        for address in addresses:
            try:
                result.results.append(self.read(address))
            except StoreError as e:
                log.debug("Read failed for %s: %r", address, e)
                result.errors.append(ReadError.from_error(address, e))
        if result.errors:
            log.info(
                "%s of %s reads failed:\n%s",
                len(result.errors),
                len(result.results) + len(result.errors),
                fmt_lines(f"{error.address}: {error.message}" for error in result.errors),
            )
        return result

    @log_calls(level="debug")
    def edit(
        self,
        address: AddressInput,
        ops: Iterable[EditOp | Dict[str, Any]],
        expected_hash: Optional[str] = None,
        scope: Optional[Scope | str] = None,
    ) -> EditResult:
        """
        Apply edit ops in order and write the result atomically. If `expected_hash` is
        given and the current content doesn't match it, nothing is changed and
        `HashMismatch` is raised. If no op matched, nothing is written.
        """
        edit_ops = parse_edit_ops(ops)
        doc_scope, id, path = self._locate(self._parse(address, scope))
        files = self.storage(doc_scope).files

        content = files.read_text(path)
        current_hash = hash_text(content)
        self._check_hash(expected_hash, current_hash, doc_scope, id, path)

        new_content, applied = apply_edit_ops(content, edit_ops)
        if not applied:
            log.info("No edits applied to %s", fmt_doc(doc_scope, id, path))
            return EditResult(id=id, path=path, scope=doc_scope, applied=0, hash=current_hash)

        files.write_text(path, new_content)
        log.info(
            "%s Edited %s (%s of %s edits applied)",
            EMOJI_SAVED,
            fmt_doc(doc_scope, id, path),
            applied,
            len(edit_ops),
        )
        return EditResult(
            id=id, path=path, scope=doc_scope, applied=applied, hash=hash_text(new_content)
        )

    def _check_hash(
        self, expected_hash: Optional[str], current_hash: str, scope: Scope, id: str, path: str
    ) -> None:
        if expected_hash and expected_hash != current_hash:
            raise HashMismatch(
                f"Expected hash '{expected_hash}', got '{current_hash}'",
                {
                    "id": id,
                    "path": path,
                    "scope": scope.value,
                    "expected": expected_hash,
                    "actual": current_hash,
                },
            )

    @log_calls(level="debug")
    @synchronized
    def delete(
        self,
        address: AddressInput,
        expected_hash: Optional[str] = None,
        scope: Optional[Scope | str] = None,
    ) -> DeleteResult:
        """
        Delete a document and its index entry, then remove any folders left without
        documents (never the scope root). Idempotent: deleting something that isn't
        there gives `deleted=False`.
        """
        try:
            doc_scope, id, path = self._locate(self._parse(address, scope))
        except NotFound as e:
            log.debug("Nothing to delete: %s", e)
            return DeleteResult(deleted=False)

        storage = self.storage(doc_scope)
        if expected_hash:
            try:
                current_hash: Optional[str] = hash_text(storage.files.read_text(path))
            except NotFound:
                current_hash = None
            if current_hash:
                self._check_hash(expected_hash, current_hash, doc_scope, id, path)

        deleted = storage.files.delete(path, scope_root=storage.root).deleted

        index = storage.index.read()
        if index.remove(id=id, path=path):
            storage.index.write(index)

        if deleted:
            log.info("%s Deleted %s", EMOJI_DELETED, fmt_doc(doc_scope, id, path))
        else:
            log.warning(
                "File was already missing, removed index entry: %s", fmt_doc(doc_scope, id, path)
            )
        return DeleteResult(deleted=deleted, id=id, path=path, scope=doc_scope)

    def _list_scope(
        self, scope: Scope, path_prefix: Optional[str], include_content: bool
    ) -> List[ListItem]:
        files = self.storage(scope).files
        index = self.read_index(scope)

        items: List[ListItem] = []
        for id, entry in index.ids.items():
            path = entry.path
            if path_prefix and not path.startswith(path_prefix):
                continue
            try:
                modified_at = datetime.fromtimestamp(files.stat(path).st_mtime, tz=timezone.utc)
                item = ListItem(scope=scope, id=id, path=path, modified_at=modified_at)
                if include_content:
                    content = files.read_text(path)
                    item.synopsis = synopsis_of(split_front_matter(content).front_matter)
                    item.hash = hash_text(content)
            except StoreError as e:
                log.info("Skipping unreadable %s: %s", fmt_doc(scope, id, path), e)
                continue
            items.append(item)
        return items

    @log_calls(level="debug")
    def list(
        self,
        scope: Optional[Scope | str] = None,
        path_prefix: Optional[str] = None,
        include_content: bool = False,
    ) -> List[ListItem]:
        """
        List documents from the index, sorted by path. Without a scope, both scopes are
        listed and items at the same path in both are marked: the project item
        `overrides` the shared one, which is `overridden`.
        """
        if scope is not None:
            return sorted(
                self._list_scope(Scope.parse(scope), path_prefix, include_content),
                key=lambda item: item.path,
            )

        project_items = self._list_scope(Scope.project, path_prefix, include_content)
        shared_items = self._list_scope(Scope.shared, path_prefix, include_content)

        project_paths = {item.path for item in project_items}
        shared_paths = {item.path for item in shared_items}
        for item in project_items:
            if item.path in shared_paths:
                item.override = Override.overrides
        for item in shared_items:
            if item.path in project_paths:
                item.override = Override.overridden

        return sorted(
            project_items + shared_items,
            key=lambda item: (item.path, item.scope != Scope.project),
        )

    @log_calls(level="debug")
    @synchronized
    def move(
        self,
        source: AddressInput,
        destination_path: str,
        destination_scope: Optional[Scope | str] = None,
        expected_hash: Optional[str] = None,
    ) -> MoveResult:
        """
        Move a document by creating it at the destination and then deleting the source.
        The document gets a new ID. The destination scope defaults to the source's.

        The two steps are not atomic. If the source delete fails (say it changed in the
        meantime) the new copy at the destination remains.
        """
        src = self.read(source)
        self._check_hash(expected_hash, src.hash, src.scope, src.id, src.path)

        dest_scope = Scope.parse(destination_scope) if destination_scope else src.scope
        dest_path = self._normalize_path(destination_path)
        if dest_scope == src.scope and dest_path == src.path:
            raise ValidationError(
                f"Source and destination are the same: {fmt_doc(src.scope, src.id, src.path)}",
                {"path": dest_path, "scope": dest_scope.value},
            )

        created = self.create(PathAddress(dest_path, dest_scope), src.content)
        try:
            self.delete(IdAddress(src.id, src.scope), expected_hash=src.hash)
        except StoreError:
            log.warning(
                "Move left a copy behind: created %s but could not delete %s",
                fmt_doc(created.scope, created.id, created.path),
                fmt_doc(src.scope, src.id, src.path),
            )
            raise

        log.info(
            "Moved %s to %s",
            fmt_doc(src.scope, src.id, src.path),
            fmt_doc(created.scope, created.id, created.path),
        )
        return MoveResult(
            old_id=src.id,
            new_id=created.id,
            old_path=src.path,
            path=created.path,
            old_scope=src.scope,
            scope=created.scope,
        )

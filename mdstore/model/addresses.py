"""
Addressing of stored entities.

Every entity (doc, template, cartridge) is addressed either by ID or by path, with an
optional scope. IDs carry their scope in their prefix: `doc007` is a project doc,
`sdoc007` a shared one. The digit group is at least 3 digits and simply grows past
that (`doc1000`).
"""

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

import regex

from mdstore.errors import ValidationError
from mdstore.model.scopes import Scope

SHARED_ID_PREFIX = "s"

MIN_ID_DIGITS = 3


@dataclass(frozen=True)
class ResolvedAddress:
    kind: Literal["id", "path"]
    value: str


class AddressResolver:
    """
    Tells IDs (strings matching an ID pattern) apart from paths (anything else).
    """

    def __init__(self, id_pattern: str, entity_name: str):
        self._pattern = regex.compile(id_pattern)
        self._entity_name = entity_name

    def is_id(self, identifier: str) -> bool:
        return bool(self._pattern.fullmatch(identifier))

    def validate_id(self, id: str) -> bool:
        return self.is_id(id)

    def resolve(self, identifier: str) -> ResolvedAddress:
        if self.is_id(identifier):
            return ResolvedAddress("id", identifier)
        return ResolvedAddress("path", identifier)

    @property
    def pattern(self):
        return self._pattern

    @property
    def entity_name(self) -> str:
        return self._entity_name

    def __repr__(self):
        return f"AddressResolver({self._entity_name}: {self._pattern.pattern})"


class EntityAddressResolver:
    """
    Scope-aware IDs for one entity type, e.g. `doc###` (project) and `sdoc###` (shared).
    """

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.project = AddressResolver(rf"{prefix}\d{{{MIN_ID_DIGITS},}}", f"project-{prefix}")
        self.shared = AddressResolver(
            rf"{SHARED_ID_PREFIX}{prefix}\d{{{MIN_ID_DIGITS},}}", f"shared-{prefix}"
        )

    def detect_scope_from_id(self, id: str) -> Optional[Scope]:
        if self.project.is_id(id):
            return Scope.project
        if self.shared.is_id(id):
            return Scope.shared
        return None

    def is_entity_id(self, identifier: str) -> bool:
        return self.project.is_id(identifier) or self.shared.is_id(identifier)

    def resolver_for_scope(self, scope: Scope) -> AddressResolver:
        return self.project if scope == Scope.project else self.shared

    def validate_id_for_scope(self, id: str, scope: Scope) -> bool:
        return self.resolver_for_scope(scope).validate_id(id)

    def id_prefix(self, scope: Scope) -> str:
        return self.prefix if scope == Scope.project else f"{SHARED_ID_PREFIX}{self.prefix}"

    def format_id(self, scope: Scope, number: int) -> str:
        return f"{self.id_prefix(scope)}{number:0{MIN_ID_DIGITS}d}"

    def id_number(self, id: str) -> Optional[int]:
        """
        Numeric part of a valid ID, or None if this isn't an ID of this entity type.
        """
        scope = self.detect_scope_from_id(id)
        if scope is None:
            return None
        return int(id[len(self.id_prefix(scope)) :])

    def __repr__(self):
        return f"EntityAddressResolver({self.prefix})"


DOC_ADDRESSES = EntityAddressResolver("doc")

TEMPLATE_ADDRESSES = EntityAddressResolver("tpl")

CARTRIDGE_ADDRESSES = EntityAddressResolver("crt")


@dataclass(frozen=True)
class IdAddress:
    id: str
    scope: Optional[Scope] = None

    def __post_init__(self):
        object.__setattr__(self, "scope", Scope.parse_optional(self.scope))

    @property
    def kind(self) -> str:
        return "id"

    def __str__(self):
        return f"{self.scope}:{self.id}" if self.scope else self.id


@dataclass(frozen=True)
class PathAddress:
    path: str
    scope: Optional[Scope] = None

    def __post_init__(self):
        object.__setattr__(self, "scope", Scope.parse_optional(self.scope))

    @property
    def kind(self) -> str:
        return "path"

    def __str__(self):
        return f"{self.scope}:{self.path}" if self.scope else self.path


Address = IdAddress | PathAddress


def parse_address(
    value: Address | Dict[str, Any] | str,
    addresses: EntityAddressResolver,
    scope: Optional[Scope | str] = None,
) -> Address:
    """
    Accept an address object, a `{"kind": "id", "id": ...}` or `{"kind": "path",
    "path": ...}` dict (each with optional `"scope"`), or a bare identifier string that
    is an ID if it looks like one and a path otherwise. `scope` applies to strings only.
    """
    if isinstance(value, (IdAddress, PathAddress)):
        return value

    if isinstance(value, str):
        if addresses.is_entity_id(value):
            return IdAddress(value, scope)
        return PathAddress(value, scope)

    if isinstance(value, dict):
        kind = value.get("kind")
        if kind == "id" and isinstance(value.get("id"), str):
            return IdAddress(value["id"], value.get("scope"))
        if kind == "path" and isinstance(value.get("path"), str):
            return PathAddress(value["path"], value.get("scope"))
        raise ValidationError(f"Invalid address: {value!r}", {"address": value})

    raise ValidationError(f"Invalid address type: {type(value).__name__}", {"address": value})


## Tests


def test_address_resolver():
    resolver = AddressResolver(r"doc\d{3,}", "doc")
    assert resolver.is_id("doc001")
    assert resolver.is_id("doc1000")
    assert not resolver.is_id("doc01")
    assert not resolver.is_id("auth/doc001")
    assert not resolver.is_id("doc001.md")
    assert resolver.resolve("doc042") == ResolvedAddress("id", "doc042")
    assert resolver.resolve("auth/jwt.md") == ResolvedAddress("path", "auth/jwt.md")
    assert resolver.entity_name == "doc"


def test_entity_addresses():
    assert DOC_ADDRESSES.detect_scope_from_id("doc001") == Scope.project
    assert DOC_ADDRESSES.detect_scope_from_id("sdoc005") == Scope.shared
    assert DOC_ADDRESSES.detect_scope_from_id("tpl001") is None
    assert TEMPLATE_ADDRESSES.is_entity_id("stpl012")
    assert not CARTRIDGE_ADDRESSES.is_entity_id("sdoc012")
    assert DOC_ADDRESSES.validate_id_for_scope("sdoc001", Scope.shared)
    assert not DOC_ADDRESSES.validate_id_for_scope("sdoc001", Scope.project)
    assert DOC_ADDRESSES.format_id(Scope.shared, 7) == "sdoc007"
    assert DOC_ADDRESSES.format_id(Scope.project, 1000) == "doc1000"
    assert DOC_ADDRESSES.id_number("sdoc1000") == 1000
    assert DOC_ADDRESSES.id_number("x/doc1") is None


def test_parse_address():
    assert parse_address("doc001", DOC_ADDRESSES) == IdAddress("doc001")
    assert parse_address("a/b.md", DOC_ADDRESSES, "shared") == PathAddress("a/b.md", Scope.shared)
    assert parse_address({"kind": "id", "id": "sdoc002"}, DOC_ADDRESSES) == IdAddress("sdoc002")
    assert parse_address(
        {"kind": "path", "path": "x.md", "scope": "project"}, DOC_ADDRESSES
    ) == PathAddress("x.md", Scope.project)
    assert str(IdAddress("doc001", "project")) == "project:doc001"

    for bad in [{"kind": "name", "name": "x"}, {"kind": "id"}, 42]:
        try:
            parse_address(bad, DOC_ADDRESSES)  # type: ignore
            assert False
        except ValidationError:
            pass

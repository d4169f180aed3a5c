import json

import pytest

from mdstore.errors import (
    AlreadyExists,
    BoundaryViolation,
    ErrorKind,
    HashMismatch,
    NotFound,
    ValidationError,
)
from mdstore.model.addresses import IdAddress, PathAddress
from mdstore.model.doc_model import Override
from mdstore.model.edit_ops import ReplaceAll, ReplaceOnce
from mdstore.model.scopes import Scope
from mdstore.store.doc_store import normalize_doc_path
from mdstore.util.hash_utils import hash_text


def assert_index_consistent(docs):
    for scope in Scope:
        assert docs.read_index(scope).is_consistent()


def test_round_trip(docs):
    content = "# Notes\n\nSome *markdown* with unicode: café ✓\n"
    for scope, path in [(Scope.project, "notes/a.md"), (Scope.shared, "deep/er/b.md")]:
        created = docs.create(PathAddress(path, scope), content)
        assert created.scope == scope
        assert created.hash == hash_text(content)

        read = docs.read(IdAddress(created.id))
        assert read.content == content
        assert read.path == path
        assert read.scope == scope
        assert read.hash == created.hash

    assert docs.read("notes/a.md").id == "doc001"
    assert docs.read("deep/er/b.md").id == "sdoc001"


def test_ids_increase_per_scope(docs):
    ids = [docs.create(f"n{i}.md", "x").id for i in range(3)]
    assert ids == ["doc001", "doc002", "doc003"]
    assert docs.create("n.md", "x", scope="shared").id == "sdoc001"

    docs.delete("doc002")
    assert docs.create("n9.md", "x").id == "doc004"


def test_create_rejects_bad_paths(docs):
    with pytest.raises(ValidationError):
        docs.create(PathAddress("doc005"), "looks like an id")
    with pytest.raises(ValidationError):
        docs.create("sdoc005", "looks like an id")
    with pytest.raises(ValidationError):
        docs.create("/abs/path.md", "x")
    with pytest.raises(ValidationError):
        docs.create("   ", "x")
    with pytest.raises(ValidationError):
        docs.create("what?.md", "x")
    with pytest.raises(BoundaryViolation):
        docs.create("../../etc/passwd", "x")

    docs.create("a.md", "x")
    with pytest.raises(AlreadyExists) as exc_info:
        docs.create("a.md", "y")
    assert exc_info.value.kind == ErrorKind.ALREADY_EXISTS
    assert docs.read("a.md").content == "x"


def test_path_normalization():
    assert normalize_doc_path("a\\b\\c.md") == "a/b/c.md"
    assert normalize_doc_path("a/b/") == "a/b"
    assert normalize_doc_path("./a//b.md") == "a/b.md"
    with pytest.raises(BoundaryViolation):
        normalize_doc_path("a/../../b.md")
    with pytest.raises(ValidationError):
        normalize_doc_path("bad|name.md")


def test_read_errors(docs):
    with pytest.raises(NotFound):
        docs.read("doc001")
    with pytest.raises(NotFound):
        docs.read("missing.md")
    with pytest.raises(BoundaryViolation):
        docs.read("../../etc/passwd")
    with pytest.raises(ValidationError):
        docs.read(IdAddress("not-an-id"))
    with pytest.raises(ValidationError):
        docs.read({"kind": "id", "id": "doc001", "scope": "elsewhere"})

    created = docs.create("a.md", "x")
    with pytest.raises(ValidationError):
        docs.read(IdAddress(created.id, Scope.shared))


def test_read_symlink_outside_scope(docs, tmp_path):
    outside = tmp_path / "secret.md"
    outside.write_text("secret")
    created = docs.create("link.md", "placeholder")

    doc_file = docs.storage(Scope.project).root / "link.md"
    doc_file.unlink()
    doc_file.symlink_to(outside)

    with pytest.raises(BoundaryViolation):
        docs.read(created.id)


def test_read_front_matter(docs):
    content = "---\ntitle: JWT\nsynopsis: Token auth setup\n---\n\n# JWT\n"
    created = docs.create("auth/jwt.md", content)
    read = docs.read(created.id)
    assert read.front_matter == {"title": "JWT", "synopsis": "Token auth setup"}
    assert read.body == "# JWT"
    assert read.content == content

    plain = docs.read(docs.create("plain.md", "# Plain").id)
    assert plain.front_matter is None
    assert plain.body == "# Plain"


def test_path_scope_resolution(docs):
    docs.create("shared-only.md", "shared", scope="shared")
    docs.create("both.md", "shared", scope="shared")
    docs.create("both.md", "project", scope="project")

    assert docs.read("shared-only.md").scope == Scope.shared
    assert docs.read("both.md").content == "project"
    assert docs.read(PathAddress("both.md", Scope.shared)).content == "shared"

    # Without a scope, a path already in the shared index resolves there.
    with pytest.raises(AlreadyExists):
        docs.create("shared-only.md", "again")


def test_hash_guarded_edit(docs):
    created = docs.create("a.md", "hello world")
    h = docs.read(created.id).hash

    result = docs.edit(created.id, [ReplaceOnce("world", "there")], expected_hash=h)
    assert result.applied == 1
    assert result.hash == hash_text("hello there")
    assert docs.read(created.id).content == "hello there"

    with pytest.raises(HashMismatch) as exc_info:
        docs.edit(created.id, [ReplaceAll("hello", "bye")], expected_hash=h)
    assert exc_info.value.details["expected"] == h
    assert exc_info.value.details["actual"] == result.hash
    assert docs.read(created.id).content == "hello there"


def test_edit_ops(docs):
    created = docs.create("a.md", "one two two three")
    result = docs.edit(
        created.id,
        [
            {"op": "replaceAll", "oldText": "two", "newText": "2"},
            {"op": "replaceRegex", "pattern": r"^one", "replacement": "1"},
            {"op": "replaceAll", "oldText": "absent", "newText": "x"},
        ],
    )
    assert result.applied == 2
    assert docs.read(created.id).content == "1 2 2 three"

    docs.edit("a.md", [{"op": "replaceAllContent", "content": "fresh"}])
    assert docs.read(created.id).content == "fresh"

    # No write when nothing applies.
    doc_file = docs.storage(Scope.project).root / "a.md"
    mtime = doc_file.stat().st_mtime_ns
    unchanged = docs.edit(created.id, [ReplaceAll("absent", "x")])
    assert unchanged.applied == 0
    assert unchanged.hash == hash_text("fresh")
    assert doc_file.stat().st_mtime_ns == mtime

    # A failing op in the sequence leaves content unchanged.
    with pytest.raises(ValidationError):
        docs.edit(created.id, [ReplaceAll("fresh", "stale"), ReplaceOnce("absent", "x")])
    assert docs.read(created.id).content == "fresh"

    with pytest.raises(ValidationError):
        docs.edit(created.id, [])
    with pytest.raises(ValidationError):
        docs.edit(created.id, [{"op": "replaceRegex", "pattern": "(", "replacement": ""}])


def test_idempotent_delete(docs):
    created = docs.create("a/b.md", "x")
    first = docs.delete(created.id)
    assert first.deleted
    assert first.path == "a/b.md"
    assert not docs.delete(created.id).deleted
    assert not docs.delete("a/b.md").deleted
    assert not docs.delete("never/existed.md").deleted
    with pytest.raises(NotFound):
        docs.read(created.id)
    assert_index_consistent(docs)


def test_hash_guarded_delete(docs):
    created = docs.create("a.md", "x")
    with pytest.raises(HashMismatch):
        docs.delete(created.id, expected_hash=hash_text("something else"))
    assert docs.read(created.id).content == "x"
    assert docs.delete(created.id, expected_hash=created.hash).deleted


def test_delete_with_missing_file_cleans_index(docs):
    created = docs.create("gone.md", "x")
    (docs.storage(Scope.project).root / "gone.md").unlink()

    result = docs.delete(created.id)
    assert not result.deleted
    assert docs.read_index(Scope.project).path_for(created.id) is None


def test_delete_top_level_document(docs):
    root = docs.storage(Scope.project).root
    created = docs.create("a.md", "x")

    assert docs.delete(created.id).deleted
    assert not (root / "a.md").exists()
    assert docs.read_index(Scope.project).path_for(created.id) is None
    assert root.is_dir()
    assert not docs.delete(created.id).deleted


def test_failed_folder_cleanup_still_updates_index(docs, monkeypatch):
    from mdstore.file_storage.file_service import FileService

    def fail(self, folder):
        raise RuntimeError("cleanup broke")

    monkeypatch.setattr(FileService, "_is_removable_folder", fail)
    root = docs.storage(Scope.project).root
    created = docs.create("a/b.md", "x")

    assert docs.delete(created.id).deleted
    assert not (root / "a" / "b.md").exists()
    assert docs.read_index(Scope.project).path_for(created.id) is None
    assert_index_consistent(docs)


def test_index_file_path_is_reserved(docs):
    with pytest.raises(ValidationError):
        docs.create(".index.json", "my notes")
    with pytest.raises(ValidationError):
        docs.create("\\.index.json", "my notes")
    with pytest.raises(ValidationError):
        docs.read(".index.json")

    created = docs.create("notes/.index.json", "nested is fine")
    assert docs.read(created.id).content == "nested is fine"
    assert docs.create("other.md", "x").id == "doc002"
    assert_index_consistent(docs)


def test_migration(docs):
    root = docs.storage(Scope.project).root
    root.mkdir(parents=True, exist_ok=True)
    (root / "a").mkdir()
    (root / "a" / "b.md").write_text("legacy")
    index_file = root / ".index.json"
    index_file.write_text(json.dumps({"doc001": "a/b.md"}))

    index = docs.read_index(Scope.project)
    assert index.model_dump(by_alias=True) == {
        "id": {"doc001": {"path": "a/b.md"}},
        "pathToId": {"a/b.md": "doc001"},
    }
    assert json.loads(index_file.read_text()) == {
        "id": {"doc001": {"path": "a/b.md"}},
        "pathToId": {"a/b.md": "doc001"},
    }

    assert docs.read("doc001").content == "legacy"
    assert docs.create("c.md", "new").id == "doc002"


def test_cleanup_boundary(docs):
    root = docs.storage(Scope.project).root
    created = docs.create("a/b/c.md", "x")
    docs.delete(created.id)

    assert not (root / "a").exists()
    assert root.is_dir()


def test_move_scenario(docs):
    created = docs.create(PathAddress("auth/jwt.md", Scope.project), "# JWT")
    assert created.id == "doc001"

    moved = docs.move("doc001", "auth/jwt-v2.md")
    assert moved.new_id == "doc002"
    assert moved.old_id == "doc001"
    assert moved.scope == Scope.project

    with pytest.raises(NotFound):
        docs.read("doc001")
    read = docs.read("doc002")
    assert read.content == "# JWT"
    assert read.path == "auth/jwt-v2.md"
    assert_index_consistent(docs)


def test_move_across_scopes(docs):
    created = docs.create("notes/a.md", "shared soon")
    moved = docs.move(created.id, "notes/a.md", destination_scope="shared")
    assert moved.new_id == "sdoc001"
    assert docs.read("sdoc001").content == "shared soon"
    assert docs.list(scope="project") == []
    assert_index_consistent(docs)


def test_move_safeguards(docs):
    a = docs.create("a.md", "a")
    docs.create("b.md", "b")

    with pytest.raises(ValidationError):
        docs.move(a.id, "a.md")
    with pytest.raises(AlreadyExists):
        docs.move(a.id, "b.md")
    with pytest.raises(HashMismatch):
        docs.move(a.id, "c.md", expected_hash=hash_text("stale"))
    with pytest.raises(NotFound):
        docs.move("doc099", "d.md")

    assert docs.read(a.id).content == "a"
    assert [item.path for item in docs.list()] == ["a.md", "b.md"]


def test_list(docs):
    docs.create("guides/setup.md", "---\nsynopsis: How to set up\n---\nbody", scope="shared")
    docs.create("guides/setup.md", "project version", scope="project")
    docs.create("guides/extra.md", "extra", scope="shared")
    docs.create("other/x.md", "x")

    items = docs.list()
    assert [(i.path, i.scope, i.override) for i in items] == [
        ("guides/extra.md", Scope.shared, None),
        ("guides/setup.md", Scope.project, Override.overrides),
        ("guides/setup.md", Scope.shared, Override.overridden),
        ("other/x.md", Scope.project, None),
    ]
    assert all(i.modified_at is not None for i in items)
    assert all(i.hash is None and i.synopsis is None for i in items)

    shared = docs.list(scope="shared", path_prefix="guides/", include_content=True)
    assert [i.id for i in shared] == ["sdoc002", "sdoc001"]
    assert shared[1].synopsis == "How to set up"
    assert shared[1].hash == hash_text("---\nsynopsis: How to set up\n---\nbody")
    assert all(i.override is None for i in shared)

    with pytest.raises(ValidationError):
        docs.list(scope="global")


def test_list_skips_unreadable(docs):
    docs.create("a.md", "a")
    docs.create("b.md", "b")
    (docs.storage(Scope.project).root / "b.md").unlink()

    assert [i.path for i in docs.list(scope="project")] == ["a.md"]


def test_read_many(docs):
    a = docs.create("a.md", "a")
    result = docs.read_many([a.id, "missing.md", {"kind": "id", "id": "bogus"}])
    assert [r.content for r in result.results] == ["a"]
    assert [e.kind for e in result.errors] == [ErrorKind.NOT_FOUND, ErrorKind.VALIDATION_ERROR]
    assert result.errors[0].address == "missing.md"


def test_index_bijection_after_mixed_operations(docs):
    ids = [docs.create(f"d/{i}.md", f"content {i}").id for i in range(5)]
    docs.edit(ids[0], [ReplaceAll("content", "text")])
    docs.delete(ids[1])
    docs.move(ids[2], "moved/2.md")
    docs.move(ids[3], "d/3.md", destination_scope="shared")
    docs.delete("d/4.md")
    assert_index_consistent(docs)

    project = docs.read_index(Scope.project)
    assert set(project.path_to_id) == {"d/0.md", "moved/2.md"}
    assert set(docs.read_index(Scope.shared).path_to_id) == {"d/3.md"}

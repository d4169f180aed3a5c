import os

import pytest

from mdstore.file_storage.file_service import FileService


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "docs"
    root.mkdir()
    return root


def test_removes_empty_ancestors_but_keeps_root(root):
    fs = FileService(root)
    fs.write_text("stories/001-test/design/details/plan.md", "plan")

    assert fs.delete("stories/001-test/design/details/plan.md", scope_root=root).deleted
    assert not (root / "stories").exists()
    assert root.is_dir()
    assert os.listdir(root) == []


def test_stops_at_folder_with_documents(root):
    fs = FileService(root)
    fs.write_text("stories/001-test/readme.md", "keep")
    fs.write_text("stories/001-test/design/details/plan.md", "plan")

    fs.delete("stories/001-test/design/details/plan.md", scope_root=root)
    assert not (root / "stories" / "001-test" / "design").exists()
    assert (root / "stories" / "001-test" / "readme.md").is_file()


def test_stops_at_folder_with_subdirectories(root):
    fs = FileService(root)
    fs.write_text("a/doc.md", "x")
    (root / "a" / "assets").mkdir()

    fs.delete("a/doc.md", scope_root=root)
    assert (root / "a" / "assets").is_dir()


def test_hidden_files_do_not_keep_folder(root):
    fs = FileService(root)
    fs.write_text("folder/doc.md", "x")
    (root / "folder" / ".DS_Store").write_text("")
    (root / "folder" / ".gitkeep").write_text("")

    fs.delete("folder/doc.md", scope_root=root)
    assert not (root / "folder").exists()


def test_other_files_keep_folder(root):
    fs = FileService(root)
    fs.write_text("folder/doc.md", "x")
    (root / "folder" / "image.png").write_bytes(b"\x89PNG")

    fs.delete("folder/doc.md", scope_root=root)
    assert (root / "folder" / "image.png").is_file()


def test_no_cleanup_without_scope_root(root):
    fs = FileService(root)
    fs.write_text("a/b/doc.md", "x")

    fs.delete("a/b/doc.md")
    assert (root / "a" / "b").is_dir()


def test_cleanup_stops_at_nested_scope_root(root):
    fs = FileService(root)
    fs.write_text("project/docs/a/doc.md", "x")
    scope_root = root / "project" / "docs"

    fs.delete("project/docs/a/doc.md", scope_root=scope_root)
    assert not (scope_root / "a").exists()
    assert scope_root.is_dir()


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs POSIX permissions")
def test_read_only_parent_stops_cleanup(root):
    fs = FileService(root)
    fs.write_text("a/b/doc.md", "x")
    (root / "a" / "b" / ".gitkeep").write_text("")
    os.chmod(root / "a", 0o555)
    try:
        assert fs.delete("a/b/doc.md", scope_root=root).deleted
        # `b` can't be removed from a read-only parent, so it keeps its hidden files.
        assert (root / "a" / "b").is_dir()
        assert (root / "a" / "b" / ".gitkeep").is_file()
    finally:
        os.chmod(root / "a", 0o755)


def test_top_level_delete_keeps_root(root):
    fs = FileService(root)
    fs.write_text("doc.md", "x")

    assert fs.delete("doc.md", scope_root=root).deleted
    assert root.is_dir()

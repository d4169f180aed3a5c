"""
Wiring of the stores over the two scope roots.

Each scope root holds one subdirectory per entity type, and each of those is the
boundary and index root for that entity's store:

    {scope_root}/docs/.index.json
    {scope_root}/templates/.index.json
    {scope_root}/cartridges/.index.json
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cachetools import cached

from mdstore.config.logger import ensure_logging, get_logger
from mdstore.config.settings import (
    CARTRIDGES_SUBDIR,
    DOCS_SUBDIR,
    global_settings,
    resolve_and_create_dirs,
    TEMPLATES_SUBDIR,
)
from mdstore.model.addresses import CARTRIDGE_ADDRESSES, DOC_ADDRESSES, TEMPLATE_ADDRESSES
from mdstore.model.scopes import Scope
from mdstore.store.doc_store import DocStore

log = get_logger(__name__)


@dataclass(frozen=True)
class StoreServices:
    project_root: Path
    shared_root: Path
    docs: DocStore
    templates: DocStore
    cartridges: DocStore


def create_services(
    project_root: Optional[str | Path] = None, shared_root: Optional[str | Path] = None
) -> StoreServices:
    """
    Create doc, template and cartridge stores. Roots default to the global settings.
    """
    ensure_logging()
    settings = global_settings()
    project = resolve_and_create_dirs(project_root or settings.project_root, is_dir=True)
    shared = resolve_and_create_dirs(shared_root or settings.shared_root, is_dir=True)

    def new_store(subdir: str, addresses, entity_name: str) -> DocStore:
        return DocStore(
            {Scope.project: project / subdir, Scope.shared: shared / subdir},
            addresses=addresses,
            entity_name=entity_name,
            index_filename=settings.index_filename,
            doc_extension=settings.doc_extension,
        )

    services = StoreServices(
        project_root=project,
        shared_root=shared,
        docs=new_store(DOCS_SUBDIR, DOC_ADDRESSES, "doc"),
        templates=new_store(TEMPLATES_SUBDIR, TEMPLATE_ADDRESSES, "template"),
        cartridges=new_store(CARTRIDGES_SUBDIR, CARTRIDGE_ADDRESSES, "cartridge"),
    )
    log.debug("Store services: project root %s, shared root %s", project, shared)
    return services


@cached(cache={})
def default_services() -> StoreServices:
    """
    Services over the default roots. Created once.
    """
    return create_services()


## Tests


def test_create_services(tmp_path):
    from mdstore.config.logger import reset_logging

    reset_logging(tmp_path)
    services = create_services(tmp_path / "project", tmp_path / "shared")
    assert services.project_root.is_dir() and services.shared_root.is_dir()
    assert services.docs.storage(Scope.shared).root == (tmp_path / "shared" / DOCS_SUBDIR).resolve()

    created = services.templates.create("prompts/review.md", "Review {{file}}")
    assert created.id == "tpl001"
    assert services.cartridges.create("notes/a.md", "a", scope="shared").id == "scrt001"
    assert services.docs.list() == []

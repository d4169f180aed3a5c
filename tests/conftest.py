import pytest

from mdstore.config.logger import reset_logging
from mdstore.store.services import create_services, StoreServices


@pytest.fixture
def services(tmp_path) -> StoreServices:
    reset_logging(tmp_path)
    return create_services(tmp_path / "project", tmp_path / "shared")


@pytest.fixture
def docs(services):
    return services.docs

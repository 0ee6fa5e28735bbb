import pytest

from sage.infrastructure.credentials import InMemoryCredentialStore
from sage.infrastructure.sqlite import Database


@pytest.fixture
def credentials():
    return InMemoryCredentialStore("sk-test-key")


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "sage.db").open()
    yield db
    db.close()

import os
from datetime import datetime, timezone

import pytest

from vaymn.library import Library
from vaymn.storage import MemoryStorage, SQLiteStorage
from vaymn.user import Role

# Fixed "now" for every test that reads the clock
NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return MemoryStorage()


@pytest.fixture
def lib(tmp_path, request):
    # A unique database file per test, seeded with the demo accounts and books
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    lib = Library(SQLiteStorage(db_file), clock=lambda: NOW, seed=True)
    yield lib
    if os.path.exists(db_file):
        os.remove(db_file)


@pytest.fixture
def as_admin(lib):
    lib.login("admin", "123", Role.ADMIN)
    return lib


@pytest.fixture
def as_student(lib):
    lib.login("user", "123", Role.USER)
    return lib

import pytest

from core.db.base import set_database_url
from core.db.schema import init_db


@pytest.fixture(autouse=True)
def _fresh_db(tmp_path):
    """Point storage at an empty SQLite file for every test."""
    set_database_url(f"sqlite:///{tmp_path / 'jobs.db'}")
    init_db()
    yield
    set_database_url(None)

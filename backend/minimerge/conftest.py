import pytest

from minimerge import example
from minimerge.base import MiniBase
from minimerge.database import DatabaseEngine
from minimerge.generator import SchemaGenerator
from minimerge.session import Session


@pytest.fixture
def engine():
    engine = DatabaseEngine(db_path=":memory:")
    SchemaGenerator().create_all(engine, MiniBase._registry)
    yield engine
    engine.close()


@pytest.fixture
def session(engine):
    session = Session(engine)
    yield session
    session.close()


@pytest.fixture
def seeded(session):
    return example.seed_users(session)


@pytest.fixture
def isolated_registry():
    """Drop models declared inside a test once it finishes."""
    saved = dict(MiniBase._registry)
    yield
    MiniBase._registry.clear()
    MiniBase._registry.update(saved)


@pytest.fixture
def count_rows(engine):
    """Count rows straight from the store, bypassing the session."""
    def count(table, **filters):
        where = " AND ".join(f'"{col}" = ?' for col in filters)
        sql = f'SELECT COUNT(*) FROM "{table}"' + (f" WHERE {where}" if where else "")
        return engine.execute(sql, tuple(filters.values()))[0][0]
    return count

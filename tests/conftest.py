import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from search_do.backends.memory import MemoryIndexBackend
from search_do.database import Base

from sample_models import Article, Comment, Notification, article_backend, comment_backend


@pytest.fixture(scope="session")
def engine():
    """Create test database engine."""
    engine = create_engine("sqlite:///:memory:", echo=False)

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a test database session, emptying the tables afterwards."""
    TestingSession = sessionmaker(engine, expire_on_commit=False)

    with TestingSession() as session:
        yield session

    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(autouse=True)
def reset_indexes():
    """Start every test with empty sample model indexes."""
    article_backend.reset()
    comment_backend.reset()
    yield
    article_backend.reset()
    comment_backend.reset()


@pytest.fixture
def memory_backend():
    return MemoryIndexBackend("test_node")


@pytest.fixture
def articles(db_session: Session):
    """Three articles whose update times increase with their id."""
    records = [
        Article(
            title=f"Article {n}",
            body=f"ruby article number {n}",
            category="programming",
            created_at=datetime(2008, 9, n),
            updated_at=datetime(2008, 9, 17, n),
        )
        for n in (1, 2, 3)
    ]
    for record in records:
        db_session.add(record)
        db_session.flush()
    db_session.commit()
    return records

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from .core.config import settings

Base = declarative_base()

engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    engine,
    expire_on_commit=False,
)

def get_db():
    with SessionLocal() as session:
        yield session

def create_tables(bind=None):
    Base.metadata.create_all(bind or engine)

def drop_tables(bind=None):
    Base.metadata.drop_all(bind or engine)

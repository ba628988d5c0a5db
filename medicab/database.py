from typing import Iterable

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

# backends with a native single-statement upsert
UPSERT_DIALECTS = ("sqlite", "postgresql", "mysql", "mariadb")


def build_engine(database_url: str) -> Engine:
    backend = make_url(database_url).get_backend_name()
    if backend not in UPSERT_DIALECTS:
        raise ValueError(f"Unsupported database backend '{backend}', expected one of {UPSERT_DIALECTS}")

    # sqlite for development, PostgreSQL or MySQL for production
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session gets its own empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency to get database session
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


# Create tables
def create_tables(engine: Engine):
    Base.metadata.create_all(bind=engine)


def upsert(db: Session, model, keys: Iterable[str], values: dict):
    """Insert a row, or update it when a row with the same unique keys exists.

    Runs as one statement so two concurrent calls for the same key cannot
    both insert. `keys` must be covered by a unique constraint on `model`.
    """
    keys = list(keys)
    dialect = db.get_bind().dialect.name
    updates = {name: value for name, value in values.items() if name not in keys}

    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=keys, set_=updates)
    elif dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(model).values(**values).on_duplicate_key_update(**updates)
    else:
        raise ValueError(f"upsert is not supported on {dialect}")

    db.execute(stmt)
    db.commit()

    filters = [getattr(model, key) == values[key] for key in keys]
    return db.query(model).filter(*filters).one()

from sqlmodel import SQLModel, create_engine

import settings
from store import SqlBackend

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=connect_args)

backend = SqlBackend(engine)


def init_db():
    SQLModel.metadata.create_all(engine)


def get_backend() -> SqlBackend:
    return backend

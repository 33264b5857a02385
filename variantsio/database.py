from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from . import dbutils
from .settings import settings


def make_engine(database_uri: str, **kwargs) -> Engine:
    engine = create_engine(database_uri, **kwargs)
    if engine.dialect.name == "sqlite":
        # variant records cascade with their source blob
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False, autoflush=False, bind=bind, query_cls=dbutils.Query
    )


engine = make_engine(settings.database_uri)
SessionLocal = make_sessionmaker(engine)

Base = declarative_base()

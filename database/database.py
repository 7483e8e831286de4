"""
Database connection and session management
SQL backing for the document store (one JSON row per document)
"""

import json
from datetime import date, datetime

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for declarative models
Base = declarative_base()


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_dumps(value) -> str:
    return json.dumps(value, default=_json_default)


def create_db_engine(database_url: str) -> Engine:
    """
    Create the engine for the given URL.
    SQLite needs check_same_thread=False because store calls run in worker threads.
    """
    kwargs = {"pool_pre_ping": True, "json_serializer": _json_dumps}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

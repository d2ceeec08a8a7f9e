"""Database module for the image registry."""

from vmregistry.db.base import Base
from vmregistry.db.session import get_db, engine, AsyncSessionLocal, build_engine

__all__ = ["Base", "get_db", "engine", "AsyncSessionLocal", "build_engine"]

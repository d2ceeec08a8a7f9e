"""SQLAlchemy declarative base for the images and counters tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass

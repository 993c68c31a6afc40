"""
Declarative base shared by every ORM model.
Alembic and the test fixtures import Base.metadata from here.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass

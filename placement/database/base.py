"""
SQLAlchemy Base Configuration

Declarative base shared by the placement test ORM models. Constraint and
index names follow a fixed convention so alembic migrations stay stable
across dialects.
"""

from typing import Any, Dict, Iterable
from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

metadata = MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
})

Base = declarative_base(metadata=metadata)


class ModelBase(Base):
    """Base class for all SQLAlchemy models."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Column values keyed by column name."""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }

    @classmethod
    def from_domain(cls, obj: Any, field_names: Iterable[str]) -> 'ModelBase':
        """Build a row from the matching attributes of a domain object."""
        columns = cls.__table__.columns
        return cls(**{
            name: getattr(obj, name)
            for name in field_names
            if name in columns
        })

import uuid

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every service's models."""


def new_id() -> str:
    """Generate a string primary key."""
    return str(uuid.uuid4())

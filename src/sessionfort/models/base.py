from sqlalchemy.orm import DeclarativeBase
from sqlmodel import SQLModel


class Base(DeclarativeBase):
    """Declarative base sharing SQLModel's MetaData, so foreign keys resolve across both styles."""

    metadata = SQLModel.metadata

"""Declarative base, UUID primary key and timestamp mixins."""
import enum
import uuid
from datetime import datetime
from typing import Any, Type

from sqlalchemy import DateTime, Enum, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def pg_enum(enum_class: Type[enum.Enum], name: str, **kwargs: Any) -> Enum:
    """Named PostgreSQL ENUM persisting the members' lowercase values.

    ``name`` must match the type created by the migration.
    """
    return Enum(
        enum_class,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        **kwargs,
    )


class Base(DeclarativeBase):
    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={getattr(self, 'id', None)}>"


class UUIDMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TimestampMixin(CreatedAtMixin):
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

"""
Module: winroom_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, a UTC-normalizing timestamp type, and the TrackedBase mixin
    for audit timestamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  This module MUST NOT import
    from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys for every kernel-owned table unless a model overrides
      ``id`` (the event log uses a monotonic integer).
    - Decimal maps to Numeric(38, 9).  NEVER use float for money.
    - Every datetime read back from the database is timezone-aware UTC, on
      PostgreSQL and on SQLite alike.

Failure modes:
    - IntegrityError on duplicate primary key (protected by PK constraint).
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import JSON, BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return value if isinstance(value, PyUUID) else PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Contract:
        Accepts aware datetimes (naive values are taken to be UTC).  SQLite
        has no timezone storage, so values are written there as naive UTC
        and re-tagged on the way out.

    Guarantees:
        - Every non-None value returned has ``tzinfo == UTC``.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
SerialBigInteger = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36) unless overridden.
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    Contract:
        Services set ``created_at``/``updated_at`` from their injected Clock
        so time stays deterministic under test; the server defaults only
        cover rows written outside the services.

    Guarantees:
        - created_at is set on INSERT and never changes.
        - updated_at is refreshed on every UPDATE.
        - created_by / updated_by hold the acting seller, admin or "system".
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)


# Re-export UUID for convenience
UUID = PyUUID

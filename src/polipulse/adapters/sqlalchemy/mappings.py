"""SQLAlchemy Core table metadata for the policy record store."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Float,
    MetaData,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)

from polipulse.domain.policy import TEXT_FIELDS

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "pk": "pk_%(table_name)s",
    }
)

policy_table = Table(
    "policy",
    metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    *(Column(name, String, nullable=name != "policy_no") for name in TEXT_FIELDS),
    Column("premium", Float, nullable=False, default=0.0),
    Column("created_at", UTCDateTime, nullable=False, default=_utcnow),
    UniqueConstraint("policy_no"),
)

WRITABLE_COLUMNS = frozenset((*TEXT_FIELDS, "premium"))


def create_all_tables(engine: Engine) -> None:
    """Create the store tables when they are missing."""

    log.info("Creating policy tables")
    metadata.create_all(engine)

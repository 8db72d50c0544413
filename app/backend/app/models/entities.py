"""ORM entities for the reconciliation schema."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    column,
    extract,
    or_,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class EntityKind(str, enum.Enum):
    COMPANY = "company"
    PROJECT = "project"


ROUNDING_INCREMENTS = (0, 5, 15, 30)
MAX_MONTHLY_HOURS = 744


def _first_of_month(column_name: str, *, nullable: bool = False):
    day_is_first = extract("day", column(column_name)) == 1
    return or_(column(column_name).is_(None), day_is_first) if nullable else day_is_first


class Entity(Base):
    """A company or project identity as reported by one source system."""

    __tablename__ = "entities"
    __table_args__ = (
        UniqueConstraint("kind", "source_system", "external_id", name="uq_entities_kind_source_external"),
        CheckConstraint(
            _first_of_month("first_seen_month", nullable=True),
            name="ck_entities_first_seen_first_of_month",
        ),
        Index("ix_entities_kind", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind: Mapped[EntityKind] = mapped_column(
        SQLEnum(
            EntityKind,
            name="entity_kind",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    source_system: Mapped[str] = mapped_column(String(64), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    source_name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_seen_month: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    @property
    def label(self) -> str:
        return self.display_name or self.source_name


class EntityGroup(Base):
    """Canonical group anchored by a primary entity.

    A row only exists while the group has at least one member; removing the
    last member deletes it.
    """

    __tablename__ = "entity_groups"
    __table_args__ = (
        UniqueConstraint("primary_entity_id", name="uq_entity_groups_primary_entity"),
        Index("ix_entity_groups_kind", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind: Mapped[EntityKind] = mapped_column(
        SQLEnum(
            EntityKind,
            name="entity_kind",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    primary_entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="RESTRICT"), nullable=False
    )
    created_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class EntityGroupMember(Base):
    __tablename__ = "entity_group_members"
    __table_args__ = (
        UniqueConstraint("member_entity_id", name="uq_entity_group_members_member_entity"),
        Index("ix_entity_group_members_group_id", "group_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entity_groups.id", ondelete="CASCADE"), nullable=False
    )
    member_entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class EntityMonthlyRate(Base):
    __tablename__ = "entity_monthly_rates"
    __table_args__ = (
        CheckConstraint("rate >= 0", name="ck_entity_monthly_rates_rate_non_negative"),
        CheckConstraint(_first_of_month("rate_month"), name="ck_entity_monthly_rates_month_first_of_month"),
        UniqueConstraint("entity_id", "rate_month", name="uq_entity_monthly_rates_entity_month"),
        Index("ix_entity_monthly_rates_month", "rate_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    rate_month: Mapped[date] = mapped_column(Date, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class EntityMonthlyRounding(Base):
    __tablename__ = "entity_monthly_rounding"
    __table_args__ = (
        CheckConstraint(
            "rounding_increment IN (0, 5, 15, 30)",
            name="ck_entity_monthly_rounding_valid_increment",
        ),
        CheckConstraint(_first_of_month("rounding_month"), name="ck_entity_monthly_rounding_month_first_of_month"),
        UniqueConstraint("entity_id", "rounding_month", name="uq_entity_monthly_rounding_entity_month"),
        Index("ix_entity_monthly_rounding_month", "rounding_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    rounding_month: Mapped[date] = mapped_column(Date, nullable=False)
    rounding_increment: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class TimeEntry(Base):
    """Raw time entry written by the ingestion workflows."""

    __tablename__ = "time_entries"
    __table_args__ = (
        CheckConstraint("duration_minutes >= 0", name="ck_time_entries_duration_non_negative"),
        UniqueConstraint("source_system", "external_id", name="uq_time_entries_source_external"),
        Index("ix_time_entries_entity_work_date", "entity_id", "work_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    source_system: Mapped[str] = mapped_column(String(64), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    task_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class EntityMonthlyBillingLimits(Base):
    """Minimum/maximum billable hours and carryover settings from a month on.

    ``None`` hour bounds mean no minimum and no cap.
    """

    __tablename__ = "entity_monthly_billing_limits"
    __table_args__ = (
        CheckConstraint(_first_of_month("limits_month"), name="ck_entity_billing_limits_month_first_of_month"),
        CheckConstraint(
            f"minimum_hours IS NULL OR (minimum_hours >= 0 AND minimum_hours <= {MAX_MONTHLY_HOURS})",
            name="ck_entity_billing_limits_minimum_range",
        ),
        CheckConstraint(
            f"maximum_hours IS NULL OR (maximum_hours >= 0 AND maximum_hours <= {MAX_MONTHLY_HOURS})",
            name="ck_entity_billing_limits_maximum_range",
        ),
        CheckConstraint(
            "minimum_hours IS NULL OR maximum_hours IS NULL OR minimum_hours <= maximum_hours",
            name="ck_entity_billing_limits_min_le_max",
        ),
        CheckConstraint(
            f"carryover_max_hours IS NULL OR (carryover_max_hours >= 0 AND carryover_max_hours <= {MAX_MONTHLY_HOURS})",
            name="ck_entity_billing_limits_carryover_max_range",
        ),
        CheckConstraint(
            "carryover_expiry_months IS NULL OR carryover_expiry_months > 0",
            name="ck_entity_billing_limits_carryover_expiry_positive",
        ),
        UniqueConstraint("entity_id", "limits_month", name="uq_entity_billing_limits_entity_month"),
        Index("ix_entity_billing_limits_month", "limits_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    limits_month: Mapped[date] = mapped_column(Date, nullable=False)
    minimum_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    maximum_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    carryover_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    carryover_max_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    carryover_expiry_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class EntityMonthlyActiveStatus(Base):
    """Whether minimum billing applies from a month on."""

    __tablename__ = "entity_monthly_active_status"
    __table_args__ = (
        CheckConstraint(_first_of_month("status_month"), name="ck_entity_active_status_month_first_of_month"),
        UniqueConstraint("entity_id", "status_month", name="uq_entity_active_status_entity_month"),
        Index("ix_entity_active_status_month", "status_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    status_month: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

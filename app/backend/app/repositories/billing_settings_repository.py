"""Repository helpers for monthly rate and rounding history."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.entities import (
    Entity,
    EntityKind,
    EntityMonthlyActiveStatus,
    EntityMonthlyBillingLimits,
    EntityMonthlyRate,
    EntityMonthlyRounding,
    TimeEntry,
)


class BillingSettingsRepository:
    """Persistence operations for per-month billing parameters."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Rates ----------
    def list_rates(self, entity_id: UUID) -> list[EntityMonthlyRate]:
        return self.db.scalars(
            select(EntityMonthlyRate)
            .where(EntityMonthlyRate.entity_id == entity_id)
            .order_by(EntityMonthlyRate.rate_month.desc())
        ).all()

    def list_rates_for_entities(self, entity_ids: set[UUID]) -> list[EntityMonthlyRate]:
        if not entity_ids:
            return []
        return self.db.scalars(
            select(EntityMonthlyRate)
            .where(EntityMonthlyRate.entity_id.in_(entity_ids))
            .order_by(EntityMonthlyRate.entity_id.asc(), EntityMonthlyRate.rate_month.asc())
        ).all()

    def get_rate(self, entity_id: UUID, rate_month: date) -> EntityMonthlyRate | None:
        return self.db.scalar(
            select(EntityMonthlyRate).where(
                EntityMonthlyRate.entity_id == entity_id,
                EntityMonthlyRate.rate_month == rate_month,
            )
        )

    def add_rate(self, rate: EntityMonthlyRate) -> EntityMonthlyRate:
        self.db.add(rate)
        self.db.flush()
        return rate

    # ---------- Rounding ----------
    def list_roundings(self, entity_id: UUID) -> list[EntityMonthlyRounding]:
        return self.db.scalars(
            select(EntityMonthlyRounding)
            .where(EntityMonthlyRounding.entity_id == entity_id)
            .order_by(EntityMonthlyRounding.rounding_month.desc())
        ).all()

    def list_roundings_for_entities(self, entity_ids: set[UUID]) -> list[EntityMonthlyRounding]:
        if not entity_ids:
            return []
        return self.db.scalars(
            select(EntityMonthlyRounding)
            .where(EntityMonthlyRounding.entity_id.in_(entity_ids))
            .order_by(EntityMonthlyRounding.entity_id.asc(), EntityMonthlyRounding.rounding_month.asc())
        ).all()

    def get_rounding(self, entity_id: UUID, rounding_month: date) -> EntityMonthlyRounding | None:
        return self.db.scalar(
            select(EntityMonthlyRounding).where(
                EntityMonthlyRounding.entity_id == entity_id,
                EntityMonthlyRounding.rounding_month == rounding_month,
            )
        )

    def add_rounding(self, rounding: EntityMonthlyRounding) -> EntityMonthlyRounding:
        self.db.add(rounding)
        self.db.flush()
        return rounding

    # ---------- Billing limits ----------
    def list_billing_limits(self, entity_id: UUID) -> list[EntityMonthlyBillingLimits]:
        return self.db.scalars(
            select(EntityMonthlyBillingLimits)
            .where(EntityMonthlyBillingLimits.entity_id == entity_id)
            .order_by(EntityMonthlyBillingLimits.limits_month.desc())
        ).all()

    def list_billing_limits_for_entities(self, entity_ids: set[UUID]) -> list[EntityMonthlyBillingLimits]:
        if not entity_ids:
            return []
        return self.db.scalars(
            select(EntityMonthlyBillingLimits)
            .where(EntityMonthlyBillingLimits.entity_id.in_(entity_ids))
            .order_by(EntityMonthlyBillingLimits.entity_id.asc(), EntityMonthlyBillingLimits.limits_month.asc())
        ).all()

    def get_billing_limits(self, entity_id: UUID, limits_month: date) -> EntityMonthlyBillingLimits | None:
        return self.db.scalar(
            select(EntityMonthlyBillingLimits).where(
                EntityMonthlyBillingLimits.entity_id == entity_id,
                EntityMonthlyBillingLimits.limits_month == limits_month,
            )
        )

    def add_billing_limits(self, limits: EntityMonthlyBillingLimits) -> EntityMonthlyBillingLimits:
        self.db.add(limits)
        self.db.flush()
        return limits

    # ---------- Active status ----------
    def list_active_statuses(self, entity_id: UUID) -> list[EntityMonthlyActiveStatus]:
        return self.db.scalars(
            select(EntityMonthlyActiveStatus)
            .where(EntityMonthlyActiveStatus.entity_id == entity_id)
            .order_by(EntityMonthlyActiveStatus.status_month.desc())
        ).all()

    def list_active_statuses_for_entities(self, entity_ids: set[UUID]) -> list[EntityMonthlyActiveStatus]:
        if not entity_ids:
            return []
        return self.db.scalars(
            select(EntityMonthlyActiveStatus)
            .where(EntityMonthlyActiveStatus.entity_id.in_(entity_ids))
            .order_by(EntityMonthlyActiveStatus.entity_id.asc(), EntityMonthlyActiveStatus.status_month.asc())
        ).all()

    def get_active_status(self, entity_id: UUID, status_month: date) -> EntityMonthlyActiveStatus | None:
        return self.db.scalar(
            select(EntityMonthlyActiveStatus).where(
                EntityMonthlyActiveStatus.entity_id == entity_id,
                EntityMonthlyActiveStatus.status_month == status_month,
            )
        )

    def add_active_status(self, status: EntityMonthlyActiveStatus) -> EntityMonthlyActiveStatus:
        self.db.add(status)
        self.db.flush()
        return status

    # ---------- Observed data ----------
    def earliest_work_date(self, entity_id: UUID) -> date | None:
        return self.db.scalar(select(func.min(TimeEntry.work_date)).where(TimeEntry.entity_id == entity_id))

    def earliest_work_dates(self, entity_ids: set[UUID]) -> dict[UUID, date]:
        if not entity_ids:
            return {}
        rows = self.db.execute(
            select(TimeEntry.entity_id, func.min(TimeEntry.work_date))
            .where(TimeEntry.entity_id.in_(entity_ids))
            .group_by(TimeEntry.entity_id)
        ).all()
        return {row[0]: row[1] for row in rows if row[1] is not None}

    def get_entity(self, entity_id: UUID) -> Entity | None:
        return self.db.scalar(select(Entity).where(Entity.id == entity_id))

    def list_entities(self, kind: EntityKind) -> list[Entity]:
        return self.db.scalars(
            select(Entity)
            .where(Entity.kind == kind)
            .order_by(func.coalesce(Entity.display_name, Entity.source_name).asc(), Entity.id.asc())
        ).all()

"""Application service for per-month billing parameters.

Hourly rate, rounding increment, billing limits and active status all share
one resolution rule (explicit, inherited, backfill, default); only the record
tables and the defaults differ.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.entities import (
    MAX_MONTHLY_HOURS,
    ROUNDING_INCREMENTS,
    Entity,
    EntityKind,
    EntityMonthlyActiveStatus,
    EntityMonthlyBillingLimits,
    EntityMonthlyRate,
    EntityMonthlyRounding,
)
from app.repositories.billing_settings_repository import BillingSettingsRepository
from app.services.effective_values import EffectiveValue, month_sequence, month_start, resolve_effective_value

logger = logging.getLogger(__name__)

V = TypeVar("V")
R = TypeVar("R")

Q2 = Decimal("0.01")
MAX_RANGE_MONTHS = 120


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _q2_or_none(value: Decimal | None) -> Decimal | None:
    return _q2(value) if value is not None else None


def _str_or_none(value: Decimal | None) -> str | None:
    return str(_q2(value)) if value is not None else None


def normalize_month_start(value: date, field_name: str = "month") -> date:
    if value.day != 1:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{field_name} must be first day of calendar month.",
        )
    return date(value.year, value.month, 1)


def _earliest(*months: date | None) -> date | None:
    present = [month for month in months if month is not None]
    return min(present) if present else None


@dataclass(frozen=True, slots=True)
class BillingLimits:
    """Hour bounds and carryover settings; ``None`` bounds are unlimited."""

    minimum_hours: Decimal | None = None
    maximum_hours: Decimal | None = None
    carryover_enabled: bool = False
    carryover_max_hours: Decimal | None = None
    carryover_expiry_months: int | None = None

    @classmethod
    def from_row(cls, row: EntityMonthlyBillingLimits) -> BillingLimits:
        return cls(
            minimum_hours=_q2_or_none(row.minimum_hours),
            maximum_hours=_q2_or_none(row.maximum_hours),
            carryover_enabled=row.carryover_enabled,
            carryover_max_hours=_q2_or_none(row.carryover_max_hours),
            carryover_expiry_months=row.carryover_expiry_months,
        )


def _history_by_entity(rows: Iterable[R], to_entry: Callable[[R], tuple[UUID, date, V]]) -> dict[UUID, list[tuple[date, V]]]:
    history: dict[UUID, list[tuple[date, V]]] = {}
    for row in rows:
        entity_id, month, value = to_entry(row)
        history.setdefault(entity_id, []).append((month, value))
    return history


class BillingSettingsService:
    """Per-month billing parameter history plus effective value resolution."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = BillingSettingsRepository(db)
        self.settings = get_settings()

    # ---------- Shared helpers ----------
    def get_entity(self, kind: EntityKind, entity_id: UUID) -> Entity:
        entity = self.repo.get_entity(entity_id)
        if entity is None or entity.kind != kind:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind.value.capitalize()} not found.")
        return entity

    def first_observed_month(self, entity: Entity) -> date | None:
        """Earliest month the entity shows up in stored metadata or raw time entries."""

        earliest_work_date = self.repo.earliest_work_date(entity.id)
        return _earliest(
            month_start(entity.first_seen_month) if entity.first_seen_month else None,
            month_start(earliest_work_date) if earliest_work_date else None,
        )

    def _first_observed_months(self, entities: list[Entity]) -> dict[UUID, date | None]:
        work_dates = self.repo.earliest_work_dates({entity.id for entity in entities})
        return {
            entity.id: _earliest(
                month_start(entity.first_seen_month) if entity.first_seen_month else None,
                month_start(work_dates[entity.id]) if entity.id in work_dates else None,
            )
            for entity in entities
        }

    @staticmethod
    def _validate_range(from_month: date, to_month: date) -> list[date]:
        start = normalize_month_start(from_month, "from_month")
        end = normalize_month_start(to_month, "to_month")
        if end < start:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="to_month must be greater than or equal to from_month.",
            )
        months = month_sequence(start, end)
        if len(months) > MAX_RANGE_MONTHS:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Month range must not exceed {MAX_RANGE_MONTHS} months.",
            )
        return months

    def _resolve_one(self, entity: Entity, history: list[tuple[date, V]], month: date, default: V) -> EffectiveValue[V]:
        return resolve_effective_value(
            history,
            normalize_month_start(month),
            default=default,
            first_observed_month=self.first_observed_month(entity),
        )

    def _resolve_range(
        self,
        entity: Entity,
        history: list[tuple[date, V]],
        from_month: date,
        to_month: date,
        default: V,
    ) -> list[tuple[date, EffectiveValue[V]]]:
        months = self._validate_range(from_month, to_month)
        first_observed = self.first_observed_month(entity)
        return [
            (month, resolve_effective_value(history, month, default=default, first_observed_month=first_observed))
            for month in months
        ]

    def _resolve_kind(
        self,
        kind: EntityKind,
        month: date,
        load_history: Callable[[set[UUID]], dict[UUID, list[tuple[date, V]]]],
        default: V,
    ) -> list[tuple[Entity, EffectiveValue[V]]]:
        target = normalize_month_start(month)
        entities = self.repo.list_entities(kind)
        first_observed = self._first_observed_months(entities)
        history = load_history({entity.id for entity in entities})
        return [
            (
                entity,
                resolve_effective_value(
                    history.get(entity.id, []),
                    target,
                    default=default,
                    first_observed_month=first_observed[entity.id],
                ),
            )
            for entity in entities
        ]

    def _save(self, row: R, label: str) -> R:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{label} upsert violated database constraints.",
            ) from exc
        self.db.refresh(row)
        return row

    # ---------- Rates ----------
    def rate_history(self, kind: EntityKind, entity_id: UUID) -> list[EntityMonthlyRate]:
        self.get_entity(kind, entity_id)
        return self.repo.list_rates(entity_id)

    def set_rate(self, kind: EntityKind, entity_id: UUID, rate_month: date, rate: Decimal) -> EntityMonthlyRate:
        entity = self.get_entity(kind, entity_id)
        month = normalize_month_start(rate_month, "rate_month")
        if rate < 0:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="rate must be non-negative.",
            )

        now = datetime.utcnow()
        row = self.repo.get_rate(entity.id, month)
        try:
            if row is None:
                row = self.repo.add_rate(
                    EntityMonthlyRate(
                        entity_id=entity.id,
                        rate_month=month,
                        rate=_q2(rate),
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                row.rate = _q2(rate)
                row.updated_at = now
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Rate upsert violated database constraints.",
            ) from exc

        row = self._save(row, "Rate")
        logger.info("Set %s %s rate for %s to %s", kind.value, entity.id, month.isoformat(), row.rate)
        return row

    def _rate_history(self, entity: Entity) -> list[tuple[date, Decimal]]:
        return [(row.rate_month, _q2(row.rate)) for row in self.repo.list_rates(entity.id)]

    def _rate_histories(self, entity_ids: set[UUID]) -> dict[UUID, list[tuple[date, Decimal]]]:
        return _history_by_entity(
            self.repo.list_rates_for_entities(entity_ids),
            lambda row: (row.entity_id, row.rate_month, _q2(row.rate)),
        )

    def resolve_rate(self, kind: EntityKind, entity_id: UUID, month: date) -> EffectiveValue[Decimal]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_one(entity, self._rate_history(entity), month, _q2(self.settings.default_hourly_rate))

    def effective_rates_for_month(self, kind: EntityKind, month: date) -> list[tuple[Entity, EffectiveValue[Decimal]]]:
        return self._resolve_kind(kind, month, self._rate_histories, _q2(self.settings.default_hourly_rate))

    def effective_rates_for_range(
        self,
        kind: EntityKind,
        entity_id: UUID,
        *,
        from_month: date,
        to_month: date,
    ) -> list[tuple[date, EffectiveValue[Decimal]]]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_range(
            entity,
            self._rate_history(entity),
            from_month,
            to_month,
            _q2(self.settings.default_hourly_rate),
        )

    # ---------- Rounding ----------
    def rounding_history(self, kind: EntityKind, entity_id: UUID) -> list[EntityMonthlyRounding]:
        self.get_entity(kind, entity_id)
        return self.repo.list_roundings(entity_id)

    def set_rounding(
        self,
        kind: EntityKind,
        entity_id: UUID,
        rounding_month: date,
        increment: int,
    ) -> EntityMonthlyRounding:
        entity = self.get_entity(kind, entity_id)
        month = normalize_month_start(rounding_month, "rounding_month")
        if increment not in ROUNDING_INCREMENTS:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Invalid rounding increment. Must be 0, 5, 15, or 30.",
            )

        now = datetime.utcnow()
        row = self.repo.get_rounding(entity.id, month)
        try:
            if row is None:
                row = self.repo.add_rounding(
                    EntityMonthlyRounding(
                        entity_id=entity.id,
                        rounding_month=month,
                        rounding_increment=increment,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                row.rounding_increment = increment
                row.updated_at = now
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Rounding upsert violated database constraints.",
            ) from exc

        row = self._save(row, "Rounding")
        logger.info("Set %s %s rounding for %s to %d min", kind.value, entity.id, month.isoformat(), increment)
        return row

    def _rounding_history(self, entity: Entity) -> list[tuple[date, int]]:
        return [(row.rounding_month, row.rounding_increment) for row in self.repo.list_roundings(entity.id)]

    def _rounding_histories(self, entity_ids: set[UUID]) -> dict[UUID, list[tuple[date, int]]]:
        return _history_by_entity(
            self.repo.list_roundings_for_entities(entity_ids),
            lambda row: (row.entity_id, row.rounding_month, row.rounding_increment),
        )

    def resolve_rounding(self, kind: EntityKind, entity_id: UUID, month: date) -> EffectiveValue[int]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_one(
            entity,
            self._rounding_history(entity),
            month,
            self.settings.default_rounding_increment,
        )

    def effective_roundings_for_month(self, kind: EntityKind, month: date) -> list[tuple[Entity, EffectiveValue[int]]]:
        return self._resolve_kind(kind, month, self._rounding_histories, self.settings.default_rounding_increment)

    def effective_roundings_for_range(
        self,
        kind: EntityKind,
        entity_id: UUID,
        *,
        from_month: date,
        to_month: date,
    ) -> list[tuple[date, EffectiveValue[int]]]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_range(
            entity,
            self._rounding_history(entity),
            from_month,
            to_month,
            self.settings.default_rounding_increment,
        )

    # ---------- Billing limits ----------
    def billing_limits_history(self, kind: EntityKind, entity_id: UUID) -> list[EntityMonthlyBillingLimits]:
        self.get_entity(kind, entity_id)
        return self.repo.list_billing_limits(entity_id)

    def set_billing_limits(
        self,
        kind: EntityKind,
        entity_id: UUID,
        limits_month: date,
        limits: BillingLimits,
    ) -> EntityMonthlyBillingLimits:
        entity = self.get_entity(kind, entity_id)
        month = normalize_month_start(limits_month, "limits_month")
        for field_name in ("minimum_hours", "maximum_hours", "carryover_max_hours"):
            value = getattr(limits, field_name)
            if value is not None and not 0 <= value <= MAX_MONTHLY_HOURS:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"{field_name} must be between 0 and {MAX_MONTHLY_HOURS}.",
                )
        if (
            limits.minimum_hours is not None
            and limits.maximum_hours is not None
            and limits.minimum_hours > limits.maximum_hours
        ):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=(
                    f"Minimum hours ({_q2(limits.minimum_hours)}) cannot exceed "
                    f"maximum hours ({_q2(limits.maximum_hours)})."
                ),
            )
        if limits.carryover_expiry_months is not None and limits.carryover_expiry_months <= 0:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="carryover_expiry_months must be positive.",
            )

        now = datetime.utcnow()
        values = {
            "minimum_hours": _q2_or_none(limits.minimum_hours),
            "maximum_hours": _q2_or_none(limits.maximum_hours),
            "carryover_enabled": limits.carryover_enabled,
            "carryover_max_hours": _q2_or_none(limits.carryover_max_hours),
            "carryover_expiry_months": limits.carryover_expiry_months,
        }
        row = self.repo.get_billing_limits(entity.id, month)
        try:
            if row is None:
                row = self.repo.add_billing_limits(
                    EntityMonthlyBillingLimits(
                        entity_id=entity.id,
                        limits_month=month,
                        created_at=now,
                        updated_at=now,
                        **values,
                    )
                )
            else:
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = now
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Billing limits upsert violated database constraints.",
            ) from exc

        row = self._save(row, "Billing limits")
        logger.info("Set %s %s billing limits for %s", kind.value, entity.id, month.isoformat())
        return row

    def _billing_limits_history(self, entity: Entity) -> list[tuple[date, BillingLimits]]:
        return [(row.limits_month, BillingLimits.from_row(row)) for row in self.repo.list_billing_limits(entity.id)]

    def _billing_limits_histories(self, entity_ids: set[UUID]) -> dict[UUID, list[tuple[date, BillingLimits]]]:
        return _history_by_entity(
            self.repo.list_billing_limits_for_entities(entity_ids),
            lambda row: (row.entity_id, row.limits_month, BillingLimits.from_row(row)),
        )

    def resolve_billing_limits(self, kind: EntityKind, entity_id: UUID, month: date) -> EffectiveValue[BillingLimits]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_one(entity, self._billing_limits_history(entity), month, BillingLimits())

    def effective_billing_limits_for_month(
        self,
        kind: EntityKind,
        month: date,
    ) -> list[tuple[Entity, EffectiveValue[BillingLimits]]]:
        return self._resolve_kind(kind, month, self._billing_limits_histories, BillingLimits())

    def effective_billing_limits_for_range(
        self,
        kind: EntityKind,
        entity_id: UUID,
        *,
        from_month: date,
        to_month: date,
    ) -> list[tuple[date, EffectiveValue[BillingLimits]]]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_range(entity, self._billing_limits_history(entity), from_month, to_month, BillingLimits())

    # ---------- Active status ----------
    def active_status_history(self, kind: EntityKind, entity_id: UUID) -> list[EntityMonthlyActiveStatus]:
        self.get_entity(kind, entity_id)
        return self.repo.list_active_statuses(entity_id)

    def set_active_status(
        self,
        kind: EntityKind,
        entity_id: UUID,
        status_month: date,
        is_active: bool,
    ) -> EntityMonthlyActiveStatus:
        entity = self.get_entity(kind, entity_id)
        month = normalize_month_start(status_month, "status_month")

        now = datetime.utcnow()
        row = self.repo.get_active_status(entity.id, month)
        try:
            if row is None:
                row = self.repo.add_active_status(
                    EntityMonthlyActiveStatus(
                        entity_id=entity.id,
                        status_month=month,
                        is_active=is_active,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                row.is_active = is_active
                row.updated_at = now
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Active status upsert violated database constraints.",
            ) from exc

        row = self._save(row, "Active status")
        logger.info("Set %s %s active status for %s to %s", kind.value, entity.id, month.isoformat(), is_active)
        return row

    def _active_status_history(self, entity: Entity) -> list[tuple[date, bool]]:
        return [(row.status_month, row.is_active) for row in self.repo.list_active_statuses(entity.id)]

    def _active_status_histories(self, entity_ids: set[UUID]) -> dict[UUID, list[tuple[date, bool]]]:
        return _history_by_entity(
            self.repo.list_active_statuses_for_entities(entity_ids),
            lambda row: (row.entity_id, row.status_month, row.is_active),
        )

    def resolve_active_status(self, kind: EntityKind, entity_id: UUID, month: date) -> EffectiveValue[bool]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_one(entity, self._active_status_history(entity), month, self.settings.default_active_status)

    def effective_active_statuses_for_month(self, kind: EntityKind, month: date) -> list[tuple[Entity, EffectiveValue[bool]]]:
        return self._resolve_kind(kind, month, self._active_status_histories, self.settings.default_active_status)

    def effective_active_statuses_for_range(
        self,
        kind: EntityKind,
        entity_id: UUID,
        *,
        from_month: date,
        to_month: date,
    ) -> list[tuple[date, EffectiveValue[bool]]]:
        entity = self.get_entity(kind, entity_id)
        return self._resolve_range(
            entity,
            self._active_status_history(entity),
            from_month,
            to_month,
            self.settings.default_active_status,
        )

    # ---------- Serialization ----------
    @staticmethod
    def serialize_rate(row: EntityMonthlyRate) -> dict[str, object]:
        return {
            "entity_id": str(row.entity_id),
            "rate_month": row.rate_month.isoformat(),
            "rate": str(_q2(row.rate)),
            "created_at": row.created_at.isoformat(),
            "updated_at": row.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_rounding(row: EntityMonthlyRounding) -> dict[str, object]:
        return {
            "entity_id": str(row.entity_id),
            "rounding_month": row.rounding_month.isoformat(),
            "rounding_increment": row.rounding_increment,
            "created_at": row.created_at.isoformat(),
            "updated_at": row.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_limits(limits: BillingLimits) -> dict[str, object]:
        return {
            "minimum_hours": _str_or_none(limits.minimum_hours),
            "maximum_hours": _str_or_none(limits.maximum_hours),
            "carryover_enabled": limits.carryover_enabled,
            "carryover_max_hours": _str_or_none(limits.carryover_max_hours),
            "carryover_expiry_months": limits.carryover_expiry_months,
        }

    @classmethod
    def serialize_billing_limits(cls, row: EntityMonthlyBillingLimits) -> dict[str, object]:
        return {
            "entity_id": str(row.entity_id),
            "limits_month": row.limits_month.isoformat(),
            **cls.serialize_limits(BillingLimits.from_row(row)),
            "created_at": row.created_at.isoformat(),
            "updated_at": row.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_active_status(row: EntityMonthlyActiveStatus) -> dict[str, object]:
        return {
            "entity_id": str(row.entity_id),
            "status_month": row.status_month.isoformat(),
            "is_active": row.is_active,
            "created_at": row.created_at.isoformat(),
            "updated_at": row.updated_at.isoformat(),
        }

    @classmethod
    def serialize_effective(cls, value: EffectiveValue) -> dict[str, object]:
        if isinstance(value.value, BillingLimits):
            payload: object = cls.serialize_limits(value.value)
        elif isinstance(value.value, Decimal):
            payload = str(value.value)
        else:
            payload = value.value
        return {
            "value": payload,
            "source": value.source.value,
            "source_month": value.source_month.isoformat() if value.source_month else None,
        }

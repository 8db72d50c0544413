"""Monthly rate, rounding, billing limit and active status endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context, require_admin
from app.db.dependencies import get_db_session
from app.models.entities import MAX_MONTHLY_HOURS, EntityKind
from app.services.billing_settings_service import BillingLimits, BillingSettingsService

router = APIRouter(prefix="/entities", tags=["billing-settings"])


class RateUpsertPayload(BaseModel):
    rate: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


class RoundingUpsertPayload(BaseModel):
    rounding_increment: int


class BillingLimitsUpsertPayload(BaseModel):
    minimum_hours: Decimal | None = Field(default=None, ge=0, le=MAX_MONTHLY_HOURS, decimal_places=2)
    maximum_hours: Decimal | None = Field(default=None, ge=0, le=MAX_MONTHLY_HOURS, decimal_places=2)
    carryover_enabled: bool = False
    carryover_max_hours: Decimal | None = Field(default=None, ge=0, le=MAX_MONTHLY_HOURS, decimal_places=2)
    carryover_expiry_months: int | None = Field(default=None, gt=0)


class ActiveStatusUpsertPayload(BaseModel):
    is_active: bool


def _billing_settings_service(db: Session) -> BillingSettingsService:
    return BillingSettingsService(db)


# ---------- Rates ----------
@router.get("/{kind}/rates/effective")
def get_effective_rates_for_month(
    kind: EntityKind,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_rates_for_month(kind, month)
    return {
        "month": month.isoformat(),
        "items": [{"entity_id": str(entity.id), **service.serialize_effective(value)} for entity, value in rows],
    }


@router.get("/{kind}/{entity_id}/rates")
def get_rate_history(
    kind: EntityKind,
    entity_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.rate_history(kind, entity_id)
    return {"items": [service.serialize_rate(row) for row in rows]}


@router.put("/{kind}/{entity_id}/rates/{rate_month}")
def put_rate(
    kind: EntityKind,
    entity_id: UUID,
    rate_month: date,
    payload: RateUpsertPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    row = service.set_rate(kind, entity_id, rate_month, payload.rate)
    return service.serialize_rate(row)


@router.get("/{kind}/{entity_id}/rates/effective")
def get_effective_rate(
    kind: EntityKind,
    entity_id: UUID,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    value = service.resolve_rate(kind, entity_id, month)
    return {"entity_id": str(entity_id), "month": month.isoformat(), **service.serialize_effective(value)}


@router.get("/{kind}/{entity_id}/rates/effective-range")
def get_effective_rate_range(
    kind: EntityKind,
    entity_id: UUID,
    from_month: date,
    to_month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_rates_for_range(kind, entity_id, from_month=from_month, to_month=to_month)
    return {
        "entity_id": str(entity_id),
        "items": [{"month": month.isoformat(), **service.serialize_effective(value)} for month, value in rows],
    }


# ---------- Rounding ----------
@router.get("/{kind}/rounding/effective")
def get_effective_roundings_for_month(
    kind: EntityKind,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_roundings_for_month(kind, month)
    return {
        "month": month.isoformat(),
        "items": [{"entity_id": str(entity.id), **service.serialize_effective(value)} for entity, value in rows],
    }


@router.get("/{kind}/{entity_id}/rounding")
def get_rounding_history(
    kind: EntityKind,
    entity_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.rounding_history(kind, entity_id)
    return {"items": [service.serialize_rounding(row) for row in rows]}


@router.put("/{kind}/{entity_id}/rounding/{rounding_month}")
def put_rounding(
    kind: EntityKind,
    entity_id: UUID,
    rounding_month: date,
    payload: RoundingUpsertPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    row = service.set_rounding(kind, entity_id, rounding_month, payload.rounding_increment)
    return service.serialize_rounding(row)


@router.get("/{kind}/{entity_id}/rounding/effective")
def get_effective_rounding(
    kind: EntityKind,
    entity_id: UUID,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    value = service.resolve_rounding(kind, entity_id, month)
    return {"entity_id": str(entity_id), "month": month.isoformat(), **service.serialize_effective(value)}


@router.get("/{kind}/{entity_id}/rounding/effective-range")
def get_effective_rounding_range(
    kind: EntityKind,
    entity_id: UUID,
    from_month: date,
    to_month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_roundings_for_range(kind, entity_id, from_month=from_month, to_month=to_month)
    return {
        "entity_id": str(entity_id),
        "items": [{"month": month.isoformat(), **service.serialize_effective(value)} for month, value in rows],
    }


# ---------- Billing limits ----------
@router.get("/{kind}/billing-limits/effective")
def get_effective_billing_limits_for_month(
    kind: EntityKind,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_billing_limits_for_month(kind, month)
    return {
        "month": month.isoformat(),
        "items": [{"entity_id": str(entity.id), **service.serialize_effective(value)} for entity, value in rows],
    }


@router.get("/{kind}/{entity_id}/billing-limits")
def get_billing_limits_history(
    kind: EntityKind,
    entity_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.billing_limits_history(kind, entity_id)
    return {"items": [service.serialize_billing_limits(row) for row in rows]}


@router.put("/{kind}/{entity_id}/billing-limits/{limits_month}")
def put_billing_limits(
    kind: EntityKind,
    entity_id: UUID,
    limits_month: date,
    payload: BillingLimitsUpsertPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    row = service.set_billing_limits(kind, entity_id, limits_month, BillingLimits(**payload.model_dump()))
    return service.serialize_billing_limits(row)


@router.get("/{kind}/{entity_id}/billing-limits/effective")
def get_effective_billing_limits(
    kind: EntityKind,
    entity_id: UUID,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    value = service.resolve_billing_limits(kind, entity_id, month)
    return {"entity_id": str(entity_id), "month": month.isoformat(), **service.serialize_effective(value)}


@router.get("/{kind}/{entity_id}/billing-limits/effective-range")
def get_effective_billing_limits_range(
    kind: EntityKind,
    entity_id: UUID,
    from_month: date,
    to_month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_billing_limits_for_range(kind, entity_id, from_month=from_month, to_month=to_month)
    return {
        "entity_id": str(entity_id),
        "items": [{"month": month.isoformat(), **service.serialize_effective(value)} for month, value in rows],
    }


# ---------- Active status ----------
@router.get("/{kind}/active-status/effective")
def get_effective_active_statuses_for_month(
    kind: EntityKind,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_active_statuses_for_month(kind, month)
    return {
        "month": month.isoformat(),
        "items": [{"entity_id": str(entity.id), **service.serialize_effective(value)} for entity, value in rows],
    }


@router.get("/{kind}/{entity_id}/active-status")
def get_active_status_history(
    kind: EntityKind,
    entity_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.active_status_history(kind, entity_id)
    return {"items": [service.serialize_active_status(row) for row in rows]}


@router.put("/{kind}/{entity_id}/active-status/{status_month}")
def put_active_status(
    kind: EntityKind,
    entity_id: UUID,
    status_month: date,
    payload: ActiveStatusUpsertPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    row = service.set_active_status(kind, entity_id, status_month, payload.is_active)
    return service.serialize_active_status(row)


@router.get("/{kind}/{entity_id}/active-status/effective")
def get_effective_active_status(
    kind: EntityKind,
    entity_id: UUID,
    month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    value = service.resolve_active_status(kind, entity_id, month)
    return {"entity_id": str(entity_id), "month": month.isoformat(), **service.serialize_effective(value)}


@router.get("/{kind}/{entity_id}/active-status/effective-range")
def get_effective_active_status_range(
    kind: EntityKind,
    entity_id: UUID,
    from_month: date,
    to_month: date,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _billing_settings_service(db)
    rows = service.effective_active_statuses_for_range(kind, entity_id, from_month=from_month, to_month=to_month)
    return {
        "entity_id": str(entity_id),
        "items": [{"month": month.isoformat(), **service.serialize_effective(value)} for month, value in rows],
    }

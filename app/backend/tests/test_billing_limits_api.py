from __future__ import annotations

import uuid
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.entities import Entity, EntityKind, EntityMonthlyRate

ADMIN = {"X-USER-EMAIL": "admin@test.local", "X-USER-NAME": "Admin"}
VIEWER = {"X-USER-EMAIL": "viewer@test.local", "X-USER-NAME": "Viewer"}


def _create_entity(
    db: Session,
    name: str,
    *,
    kind: EntityKind = EntityKind.PROJECT,
    first_seen_month: date | None = None,
) -> Entity:
    now = datetime.utcnow()
    row = Entity(
        kind=kind,
        source_system="clockify",
        external_id=uuid.uuid4().hex,
        source_name=name,
        first_seen_month=first_seen_month,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _put_limits(client: TestClient, entity: Entity, month: str, headers: dict[str, str] = ADMIN, **payload):
    return client.put(f"/api/v1/entities/project/{entity.id}/billing-limits/{month}", headers=headers, json=payload)


def _put_active(client: TestClient, entity: Entity, month: str, is_active: bool):
    return client.put(
        f"/api/v1/entities/project/{entity.id}/active-status/{month}",
        headers=ADMIN,
        json={"is_active": is_active},
    )


def _effective(client: TestClient, entity: Entity, setting: str, month: str) -> dict[str, object]:
    response = client.get(
        f"/api/v1/entities/project/{entity.id}/{setting}/effective",
        headers=VIEWER,
        params={"month": month},
    )
    assert response.status_code == 200
    return response.json()


NO_LIMITS = {
    "minimum_hours": None,
    "maximum_hours": None,
    "carryover_enabled": False,
    "carryover_max_hours": None,
    "carryover_expiry_months": None,
}


def test_billing_limits_explicit_inherited_and_default(client: TestClient, db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch")
    q = _create_entity(db_session, "Mobile App")

    response = _put_limits(
        client,
        p,
        "2025-11-01",
        minimum_hours="10",
        maximum_hours="40.5",
        carryover_enabled=True,
        carryover_max_hours="8",
        carryover_expiry_months=3,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["limits_month"] == "2025-11-01"
    assert (body["minimum_hours"], body["maximum_hours"], body["carryover_max_hours"]) == ("10.00", "40.50", "8.00")

    expected = {
        "minimum_hours": "10.00",
        "maximum_hours": "40.50",
        "carryover_enabled": True,
        "carryover_max_hours": "8.00",
        "carryover_expiry_months": 3,
    }
    explicit = _effective(client, p, "billing-limits", "2025-11-01")
    inherited = _effective(client, p, "billing-limits", "2026-02-01")
    default = _effective(client, q, "billing-limits", "2026-02-01")

    assert (explicit["value"], explicit["source"], explicit["source_month"]) == (expected, "explicit", "2025-11-01")
    assert (inherited["value"], inherited["source"]) == (expected, "inherited")
    assert (default["value"], default["source"], default["source_month"]) == (NO_LIMITS, "default", None)


def test_billing_limits_upsert_replaces_month(client: TestClient, db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch")
    _put_limits(client, p, "2025-11-01", maximum_hours="40")
    _put_limits(client, p, "2025-11-01", minimum_hours="5")

    history = client.get(f"/api/v1/entities/project/{p.id}/billing-limits", headers=VIEWER)

    assert history.status_code == 200
    items = history.json()["items"]
    assert len(items) == 1
    assert (items[0]["minimum_hours"], items[0]["maximum_hours"]) == ("5.00", None)


def test_billing_limits_validation(client: TestClient, db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch")

    inverted = _put_limits(client, p, "2025-11-01", minimum_hours="20", maximum_hours="10")
    too_many_hours = _put_limits(client, p, "2025-11-01", maximum_hours="800")
    zero_expiry = _put_limits(client, p, "2025-11-01", carryover_expiry_months=0)
    mid_month = _put_limits(client, p, "2025-11-15", maximum_hours="40")
    forbidden = _put_limits(client, p, "2025-11-01", headers=VIEWER, maximum_hours="40")

    assert inverted.status_code == 422
    assert inverted.json()["detail"] == "Minimum hours (20.00) cannot exceed maximum hours (10.00)."
    assert too_many_hours.status_code == 422
    assert zero_expiry.status_code == 422
    assert mid_month.status_code == 422
    assert mid_month.json()["detail"] == "limits_month must be first day of calendar month."
    assert forbidden.status_code == 403


def test_billing_limits_backfill_and_collection(client: TestClient, db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch", first_seen_month=date(2025, 6, 1))
    q = _create_entity(db_session, "Mobile App")
    _put_limits(client, p, "2025-09-01", maximum_hours="30")

    backfilled = _effective(client, p, "billing-limits", "2025-07-01")
    assert (backfilled["value"]["maximum_hours"], backfilled["source"], backfilled["source_month"]) == (
        "30.00",
        "backfill",
        "2025-09-01",
    )

    response = client.get(
        "/api/v1/entities/project/billing-limits/effective",
        headers=VIEWER,
        params={"month": "2025-07-01"},
    )

    assert response.status_code == 200
    values = {row["entity_id"]: (row["value"]["maximum_hours"], row["source"]) for row in response.json()["items"]}
    assert values == {str(p.id): ("30.00", "backfill"), str(q.id): (None, "default")}


def test_active_status_defaults_to_active_until_set(client: TestClient, db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch", first_seen_month=date(2025, 1, 1))

    before = _effective(client, p, "active-status", "2025-01-01")
    assert (before["value"], before["source"]) == (True, "default")

    saved = _put_active(client, p, "2025-04-01", False)
    assert saved.status_code == 200
    assert (saved.json()["status_month"], saved.json()["is_active"]) == ("2025-04-01", False)

    response = client.get(
        f"/api/v1/entities/project/{p.id}/active-status/effective-range",
        headers=VIEWER,
        params={"from_month": "2025-03-01", "to_month": "2025-05-01"},
    )

    assert response.status_code == 200
    assert [(row["month"], row["value"], row["source"]) for row in response.json()["items"]] == [
        ("2025-03-01", False, "backfill"),
        ("2025-04-01", False, "explicit"),
        ("2025-05-01", False, "inherited"),
    ]


def test_active_status_collection_and_history(client: TestClient, db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch")
    q = _create_entity(db_session, "Mobile App")
    _put_active(client, q, "2025-10-01", False)
    _put_active(client, q, "2025-12-01", True)

    response = client.get(
        "/api/v1/entities/project/active-status/effective",
        headers=VIEWER,
        params={"month": "2025-11-01"},
    )
    history = client.get(f"/api/v1/entities/project/{q.id}/active-status", headers=VIEWER)

    values = {row["entity_id"]: (row["value"], row["source"]) for row in response.json()["items"]}
    assert values == {str(p.id): (True, "default"), str(q.id): (False, "inherited")}
    assert [(row["status_month"], row["is_active"]) for row in history.json()["items"]] == [
        ("2025-12-01", True),
        ("2025-10-01", False),
    ]


def test_entity_first_seen_month_must_be_first_of_month(db_session: Session) -> None:
    with pytest.raises(IntegrityError):
        _create_entity(db_session, "Website Relaunch", first_seen_month=date(2025, 3, 15))
    db_session.rollback()


def test_monthly_record_month_must_be_first_of_month(db_session: Session) -> None:
    p = _create_entity(db_session, "Website Relaunch")
    now = datetime.utcnow()
    db_session.add(
        EntityMonthlyRate(entity_id=p.id, rate_month=date(2025, 3, 15), rate=50, created_at=now, updated_at=now)
    )

    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

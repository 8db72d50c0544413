from __future__ import annotations

from datetime import date
from decimal import Decimal

from app.services.effective_values import (
    ValueSource,
    month_sequence,
    resolve_effective_value,
)

DEFAULT_RATE = Decimal("45.00")


def test_single_record_is_explicit_for_its_month_and_inherited_after() -> None:
    history = [(date(2025, 11, 1), Decimal("50.00"))]

    november = resolve_effective_value(history, date(2025, 11, 1), default=DEFAULT_RATE)
    december = resolve_effective_value(history, date(2025, 12, 1), default=DEFAULT_RATE)

    assert (november.value, november.source, november.source_month) == (
        Decimal("50.00"),
        ValueSource.EXPLICIT,
        date(2025, 11, 1),
    )
    assert (december.value, december.source, december.source_month) == (
        Decimal("50.00"),
        ValueSource.INHERITED,
        date(2025, 11, 1),
    )


def test_empty_history_falls_back_to_default() -> None:
    value = resolve_effective_value([], date(2025, 6, 1), default=DEFAULT_RATE)

    assert value.value == DEFAULT_RATE
    assert value.source is ValueSource.DEFAULT
    assert value.source_month is None


def test_inherited_value_comes_from_latest_earlier_record() -> None:
    history = [
        (date(2025, 1, 1), Decimal("40.00")),
        (date(2025, 4, 1), Decimal("55.00")),
        (date(2025, 9, 1), Decimal("60.00")),
    ]

    value = resolve_effective_value(history, date(2025, 7, 1), default=DEFAULT_RATE)

    assert value.value == Decimal("55.00")
    assert value.source is ValueSource.INHERITED
    assert value.source_month == date(2025, 4, 1)


def test_backfill_applies_earliest_later_record_once_entity_was_observed() -> None:
    history = [(date(2025, 6, 1), 30), (date(2025, 9, 1), 5)]

    value = resolve_effective_value(history, date(2025, 3, 1), default=15, first_observed_month=date(2025, 2, 1))

    assert value.value == 30
    assert value.source is ValueSource.BACKFILL
    assert value.source_month == date(2025, 6, 1)


def test_backfill_boundary_includes_first_observed_month() -> None:
    history = [(date(2025, 6, 1), Decimal("60.00"))]

    at_first_seen = resolve_effective_value(
        history, date(2025, 3, 1), default=DEFAULT_RATE, first_observed_month=date(2025, 3, 1)
    )
    before_first_seen = resolve_effective_value(
        history, date(2025, 2, 1), default=DEFAULT_RATE, first_observed_month=date(2025, 3, 1)
    )

    assert at_first_seen.source is ValueSource.BACKFILL
    assert before_first_seen.source is ValueSource.DEFAULT
    assert before_first_seen.value == DEFAULT_RATE


def test_unknown_first_observed_month_never_backfills() -> None:
    history = [(date(2025, 6, 1), Decimal("60.00"))]

    value = resolve_effective_value(history, date(2025, 3, 1), default=DEFAULT_RATE)

    assert value.source is ValueSource.DEFAULT


def test_target_month_is_normalized_to_month_start() -> None:
    history = [(date(2025, 11, 1), Decimal("50.00"))]

    value = resolve_effective_value(history, date(2025, 11, 17), default=DEFAULT_RATE)

    assert value.source is ValueSource.EXPLICIT


def test_month_sequence_crosses_year_boundary() -> None:
    assert month_sequence(date(2025, 11, 1), date(2026, 2, 1)) == [
        date(2025, 11, 1),
        date(2025, 12, 1),
        date(2026, 1, 1),
        date(2026, 2, 1),
    ]
    assert month_sequence(date(2026, 2, 1), date(2025, 11, 1)) == []


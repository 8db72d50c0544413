"""Resolution of per-month billing parameters from sparse history."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Generic, TypeVar

V = TypeVar("V")


class ValueSource(str, enum.Enum):
    EXPLICIT = "explicit"
    INHERITED = "inherited"
    BACKFILL = "backfill"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class EffectiveValue(Generic[V]):
    value: V
    source: ValueSource
    source_month: date | None = None


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def month_sequence(start_month: date, end_month: date) -> list[date]:
    current = month_start(start_month)
    end = month_start(end_month)
    months: list[date] = []
    while current <= end:
        months.append(current)
        if current.month == 12:
            current = date(current.year + 1, 1, 1)
        else:
            current = date(current.year, current.month + 1, 1)
    return months


def resolve_effective_value(
    history: Iterable[tuple[date, V]],
    target_month: date,
    *,
    default: V,
    first_observed_month: date | None = None,
) -> EffectiveValue[V]:
    """Pick the value that applies to ``target_month``.

    Precedence, first match wins:

    1. explicit: a record for exactly ``target_month``;
    2. inherited: the latest record before it;
    3. backfill: nothing at or before it, the entity was already observed by
       ``target_month``, and a later record exists; the earliest later record
       applies retroactively;
    4. default.
    """

    target = month_start(target_month)
    by_month = {month_start(month): value for month, value in history}

    if target in by_month:
        return EffectiveValue(by_month[target], ValueSource.EXPLICIT, target)

    earlier = [month for month in by_month if month < target]
    if earlier:
        latest = max(earlier)
        return EffectiveValue(by_month[latest], ValueSource.INHERITED, latest)

    later = [month for month in by_month if month > target]
    if later and first_observed_month is not None and month_start(first_observed_month) <= target:
        earliest = min(later)
        return EffectiveValue(by_month[earliest], ValueSource.BACKFILL, earliest)

    return EffectiveValue(default, ValueSource.DEFAULT, None)

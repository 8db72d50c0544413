"""ORM model package."""

from app.models.entities import (
    MAX_MONTHLY_HOURS,
    ROUNDING_INCREMENTS,
    Entity,
    EntityGroup,
    EntityGroupMember,
    EntityKind,
    EntityMonthlyActiveStatus,
    EntityMonthlyBillingLimits,
    EntityMonthlyRate,
    EntityMonthlyRounding,
    TimeEntry,
)

__all__ = [
    "MAX_MONTHLY_HOURS",
    "ROUNDING_INCREMENTS",
    "Entity",
    "EntityGroup",
    "EntityGroupMember",
    "EntityKind",
    "EntityMonthlyActiveStatus",
    "EntityMonthlyBillingLimits",
    "EntityMonthlyRate",
    "EntityMonthlyRounding",
    "TimeEntry",
]

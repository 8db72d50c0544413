"""Ordered commit of staged group edits against a group store."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar
from uuid import UUID

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GroupOperationError(Exception):
    """A group store operation was rejected."""

    def __init__(self, message: str, *, status_code: int = 409) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GroupStore(Protocol):
    def create_and_add_member(self, primary_id: UUID, member_id: UUID) -> None: ...

    def add_member(self, primary_id: UUID, member_id: UUID) -> None: ...

    def remove_member(self, primary_id: UUID, member_id: UUID) -> bool:
        """Remove one member; return ``True`` when that emptied the group."""
        ...


class OperationKind(str, enum.Enum):
    REMOVE_MEMBER = "remove_member"
    CREATE_AND_ADD_MEMBER = "create_and_add_member"
    ADD_MEMBER = "add_member"


@dataclass(frozen=True, slots=True)
class AppliedOperation:
    kind: OperationKind
    member_id: UUID
    dissolved: bool = False


@dataclass(slots=True)
class CommitResult:
    success: bool
    group_dissolved: bool
    error: str | None = None
    applied: list[AppliedOperation] = field(default_factory=list)


def _run(action: str, operation: Callable[[UUID, UUID], T], primary_id: UUID, member_id: UUID) -> T:
    try:
        return operation(primary_id, member_id)
    except GroupOperationError as exc:
        raise GroupOperationError(f"Failed to {action}: {exc.message}", status_code=exc.status_code) from exc


def commit_staged_changes(
    store: GroupStore,
    *,
    primary_id: UUID,
    has_existing_group: bool,
    additions: Sequence[UUID],
    removals: Sequence[UUID],
) -> CommitResult:
    """Apply removals, then additions, one store call at a time.

    Removals run first so that replacing a whole membership re-creates the
    group instead of adding to one the store has already dissolved. The
    sequence is not transactional: the first failing call stops it and the
    calls already applied stay applied.
    """

    applied: list[AppliedOperation] = []
    group_dissolved = False
    additions_processed = 0

    try:
        for member_id in removals:
            group_dissolved = _run("remove member", store.remove_member, primary_id, member_id)
            applied.append(AppliedOperation(OperationKind.REMOVE_MEMBER, member_id, dissolved=group_dissolved))

        for index, member_id in enumerate(additions):
            if index == 0 and (not has_existing_group or group_dissolved):
                _run("create group", store.create_and_add_member, primary_id, member_id)
                group_dissolved = False
                applied.append(AppliedOperation(OperationKind.CREATE_AND_ADD_MEMBER, member_id))
            else:
                _run("add member", store.add_member, primary_id, member_id)
                applied.append(AppliedOperation(OperationKind.ADD_MEMBER, member_id))
            additions_processed += 1
    except GroupOperationError as exc:
        logger.warning(
            "Group commit for %s stopped after %d applied operation(s): %s",
            primary_id,
            len(applied),
            exc.message,
        )
        return CommitResult(success=False, group_dissolved=False, error=exc.message, applied=applied)

    return CommitResult(
        success=True,
        group_dissolved=group_dissolved and additions_processed == 0,
        applied=applied,
    )

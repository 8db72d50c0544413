"""Pure grouping model: roles, staged member edits and their display view.

Nothing in this module touches the database. The store-backed service builds a
``GroupIndex`` from persisted rows, and editors hold a ``StagedChanges`` per
primary entity until it is committed or discarded.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from app.models.entities import Entity


class GroupRole(str, enum.Enum):
    PRIMARY = "primary"
    MEMBER = "member"
    NONE = "none"


class MemberStatus(str, enum.Enum):
    PERSISTED = "persisted"
    PENDING_ADDITION = "pending_addition"
    PENDING_REMOVAL = "pending_removal"


@dataclass(frozen=True, slots=True)
class EntityRef:
    """Identity plus the display attributes shown in member lists."""

    id: UUID
    source_system: str
    external_id: str
    source_name: str
    display_name: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.source_name

    @classmethod
    def from_entity(cls, entity: Entity) -> EntityRef:
        return cls(
            id=entity.id,
            source_system=entity.source_system,
            external_id=entity.external_id,
            source_name=entity.source_name,
            display_name=entity.display_name,
        )


class GroupIndex:
    """Role lookup over a set of ``(primary_id, member_id)`` memberships."""

    def __init__(self, memberships: Iterable[tuple[UUID, UUID]] = ()) -> None:
        self._members: dict[UUID, list[UUID]] = {}
        self._primary_of: dict[UUID, UUID] = {}
        for primary_id, member_id in memberships:
            if member_id == primary_id:
                raise ValueError(f"Entity {primary_id} cannot be a member of its own group.")
            if member_id in self._primary_of:
                raise ValueError(f"Entity {member_id} belongs to more than one group.")
            self._members.setdefault(primary_id, []).append(member_id)
            self._primary_of[member_id] = primary_id

        overlap = set(self._members) & set(self._primary_of)
        if overlap:
            raise ValueError(f"Entities cannot be both primary and member: {sorted(str(i) for i in overlap)}")

    def role_of(self, entity_id: UUID) -> GroupRole:
        if self._members.get(entity_id):
            return GroupRole.PRIMARY
        if entity_id in self._primary_of:
            return GroupRole.MEMBER
        return GroupRole.NONE

    def member_ids_of(self, primary_id: UUID) -> list[UUID]:
        return list(self._members.get(primary_id, []))

    def primary_of(self, entity_id: UUID) -> UUID | None:
        return self._primary_of.get(entity_id)

    def canonical_id_of(self, entity_id: UUID) -> UUID:
        return self._primary_of.get(entity_id, entity_id)

    def grouped_ids(self) -> set[UUID]:
        """Every entity that is a primary or a member of some group."""

        return set(self._members) | set(self._primary_of)


@dataclass(slots=True)
class StagedChanges:
    """Unsaved member edits for one primary entity.

    ``additions`` keeps staging order; ``removals`` only ever holds persisted
    member ids. The two never overlap.
    """

    additions: list[EntityRef] = field(default_factory=list)
    removals: set[UUID] = field(default_factory=set)

    @property
    def addition_ids(self) -> list[UUID]:
        return [entity.id for entity in self.additions]

    @property
    def has_changes(self) -> bool:
        return bool(self.additions or self.removals)

    def stage_addition(self, candidate: EntityRef) -> None:
        if candidate.id in self.removals:
            # Re-adding a member marked for removal just cancels the removal.
            self.removals.discard(candidate.id)
            return
        if candidate.id in self.addition_ids:
            return
        self.additions.append(candidate)

    def unstage_addition(self, entity_id: UUID) -> None:
        self.additions = [entity for entity in self.additions if entity.id != entity_id]

    def stage_removal(self, entity_id: UUID, persisted_member_ids: Iterable[UUID]) -> None:
        if entity_id in self.addition_ids:
            self.unstage_addition(entity_id)
            return
        if entity_id not in set(persisted_member_ids):
            raise ValueError(f"Entity {entity_id} is not a persisted member and cannot be staged for removal.")
        self.removals.add(entity_id)

    def undo_removal(self, entity_id: UUID) -> None:
        self.removals.discard(entity_id)

    def clear(self) -> None:
        self.additions.clear()
        self.removals.clear()


@dataclass(frozen=True, slots=True)
class DisplayEntry:
    entity: EntityRef
    status: MemberStatus


def reconcile_display(persisted_members: Sequence[EntityRef], staged: StagedChanges) -> list[DisplayEntry]:
    """Merge persisted members with staged edits into one tagged list.

    Persisted members keep their order and stay visible when marked for
    removal; staged additions follow in staging order.
    """

    entries = [
        DisplayEntry(
            entity=member,
            status=MemberStatus.PENDING_REMOVAL if member.id in staged.removals else MemberStatus.PERSISTED,
        )
        for member in persisted_members
    ]
    entries.extend(DisplayEntry(entity=entity, status=MemberStatus.PENDING_ADDITION) for entity in staged.additions)
    return entries


def eligible_candidates(
    entities: Iterable[EntityRef],
    *,
    primary_id: UUID,
    persisted_member_ids: Iterable[UUID],
    staged: StagedChanges,
    grouped_ids: Iterable[UUID] = (),
) -> list[EntityRef]:
    """Entities that may still be picked as additions for ``primary_id``.

    Only ungrouped entities qualify, plus this group's own members that are
    staged for removal. ``grouped_ids`` lists every entity already in a group.
    """

    persisted = set(persisted_member_ids)
    active_members = persisted - staged.removals
    grouped_elsewhere = set(grouped_ids) - persisted
    excluded = {primary_id, *active_members, *grouped_elsewhere, *staged.addition_ids}
    return [entity for entity in entities if entity.id not in excluded]

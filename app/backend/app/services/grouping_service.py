"""Application service for canonical entity groups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.entities import Entity, EntityGroup, EntityGroupMember, EntityKind
from app.repositories.grouping_repository import GroupingRepository
from app.services.group_commit import CommitResult, GroupOperationError, commit_staged_changes
from app.services.group_staging import (
    DisplayEntry,
    EntityRef,
    GroupIndex,
    GroupRole,
    StagedChanges,
    eligible_candidates,
    reconcile_display,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TableEntityRow:
    entity: Entity
    role: GroupRole
    member_count: int


@dataclass(slots=True)
class CanonicalMappingRow:
    entity: Entity
    canonical_entity_id: UUID
    role: GroupRole


@dataclass(slots=True)
class GroupPreview:
    items: list[DisplayEntry]
    candidates: list[EntityRef]


class GroupingService:
    """Roles, member lists and the group store operations for one actor."""

    def __init__(self, db: Session, *, actor_email: str | None = None) -> None:
        self.db = db
        self.repo = GroupingRepository(db)
        self.actor_email = actor_email

    # ---------- Lookups ----------
    def get_entity(self, kind: EntityKind, entity_id: UUID) -> Entity:
        entity = self.repo.get_entity(entity_id)
        if entity is None or entity.kind != kind:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind.value.capitalize()} not found.")
        return entity

    def group_index(self, kind: EntityKind) -> GroupIndex:
        return GroupIndex(self.repo.list_memberships(kind))

    def role_of(self, kind: EntityKind, entity_id: UUID) -> GroupRole:
        self.get_entity(kind, entity_id)
        return self.group_index(kind).role_of(entity_id)

    def members_of(self, kind: EntityKind, primary_id: UUID) -> list[Entity]:
        self.get_entity(kind, primary_id)
        group = self.repo.get_group_for_primary(primary_id)
        if group is None:
            return []
        return self.repo.list_member_entities(group.id)

    def list_table_entities(self, kind: EntityKind) -> list[TableEntityRow]:
        """Entities shown in the admin table: primaries and ungrouped ones."""

        index = self.group_index(kind)
        rows: list[TableEntityRow] = []
        for entity in self.repo.list_entities(kind):
            role = index.role_of(entity.id)
            if role is GroupRole.MEMBER:
                continue
            rows.append(TableEntityRow(entity=entity, role=role, member_count=len(index.member_ids_of(entity.id))))
        return rows

    def canonical_mapping(self, kind: EntityKind) -> list[CanonicalMappingRow]:
        index = self.group_index(kind)
        return [
            CanonicalMappingRow(
                entity=entity,
                canonical_entity_id=index.canonical_id_of(entity.id),
                role=index.role_of(entity.id),
            )
            for entity in self.repo.list_entities(kind)
        ]

    def rename_entity(self, kind: EntityKind, entity_id: UUID, display_name: str | None) -> Entity:
        entity = self.get_entity(kind, entity_id)
        entity.display_name = display_name.strip() if display_name and display_name.strip() else None
        entity.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(entity)
        return entity

    # ---------- Staging ----------
    def build_staged_changes(
        self,
        kind: EntityKind,
        primary_id: UUID,
        *,
        addition_ids: list[UUID],
        removal_ids: list[UUID],
    ) -> tuple[list[Entity], StagedChanges]:
        """Replay staged ids against persisted members, rejecting invalid edits."""

        members = self.members_of(kind, primary_id)
        member_ids = [member.id for member in members]
        index = self.group_index(kind)

        candidates = {entity.id: entity for entity in self.repo.list_entities_by_ids(set(addition_ids))}
        staged = StagedChanges()
        for entity_id in addition_ids:
            entity = candidates.get(entity_id)
            if entity is None or entity.kind != kind:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Staged addition {entity_id} is not a known {kind.value}.",
                )
            if entity_id == primary_id:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="Primary entity cannot be staged as its own member.",
                )
            if entity_id in member_ids:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Entity {entity_id} is already a member of this group.",
                )
            if index.role_of(entity_id) is not GroupRole.NONE:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Entity {entity_id} already belongs to another group.",
                )
            staged.stage_addition(EntityRef.from_entity(entity))

        for entity_id in removal_ids:
            if entity_id in staged.addition_ids:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Entity {entity_id} cannot be staged for both addition and removal.",
                )
            try:
                staged.stage_removal(entity_id, member_ids)
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

        return members, staged

    def preview(
        self,
        kind: EntityKind,
        primary_id: UUID,
        *,
        addition_ids: list[UUID],
        removal_ids: list[UUID],
    ) -> GroupPreview:
        members, staged = self.build_staged_changes(
            kind,
            primary_id,
            addition_ids=addition_ids,
            removal_ids=removal_ids,
        )
        persisted = [EntityRef.from_entity(member) for member in members]
        return GroupPreview(
            items=reconcile_display(persisted, staged),
            candidates=eligible_candidates(
                [EntityRef.from_entity(entity) for entity in self.repo.list_entities(kind)],
                primary_id=primary_id,
                persisted_member_ids=[member.id for member in persisted],
                staged=staged,
                grouped_ids=self.group_index(kind).grouped_ids(),
            ),
        )

    # ---------- Commit ----------
    def commit_changes(
        self,
        kind: EntityKind,
        primary_id: UUID,
        *,
        has_existing_group: bool | None,
        addition_ids: list[UUID],
        removal_ids: list[UUID],
    ) -> CommitResult:
        self.get_entity(kind, primary_id)
        if len(set(addition_ids)) != len(addition_ids) or len(set(removal_ids)) != len(removal_ids):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Duplicate entity id in staged changes.",
            )
        if set(addition_ids) & set(removal_ids):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Staged additions and removals must not overlap.",
            )

        if has_existing_group is None:
            has_existing_group = self.group_index(kind).role_of(primary_id) is GroupRole.PRIMARY

        result = commit_staged_changes(
            self,
            primary_id=primary_id,
            has_existing_group=has_existing_group,
            additions=addition_ids,
            removals=removal_ids,
        )
        if result.success:
            logger.info(
                "Committed %d group operation(s) for %s %s (dissolved=%s)",
                len(result.applied),
                kind.value,
                primary_id,
                result.group_dissolved,
            )
        return result

    # ---------- Group store operations ----------
    def _load_pair(self, primary_id: UUID, member_id: UUID) -> tuple[Entity, Entity]:
        if primary_id == member_id:
            raise GroupOperationError(
                "Primary and member cannot be the same entity.",
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )
        primary = self.repo.get_entity(primary_id)
        if primary is None:
            raise GroupOperationError(f"Primary entity not found: {primary_id}", status_code=status.HTTP_404_NOT_FOUND)
        member = self.repo.get_entity(member_id)
        if member is None:
            raise GroupOperationError(f"Member entity not found: {member_id}", status_code=status.HTTP_404_NOT_FOUND)
        if primary.kind != member.kind:
            raise GroupOperationError(
                f"Cannot group a {member.kind.value} under a {primary.kind.value}.",
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )
        return primary, member

    def _ensure_ungrouped(self, entity: Entity, *, as_role: str) -> None:
        if self.repo.get_membership(entity.id) is not None:
            raise GroupOperationError(f"{as_role.capitalize()} entity {entity.id} already belongs to a group.")
        if as_role == "member" and self.repo.get_group_for_primary(entity.id) is not None:
            raise GroupOperationError(f"Entity {entity.id} is a group primary and cannot be added as a member.")

    def create_and_add_member(self, primary_id: UUID, member_id: UUID) -> None:
        primary, member = self._load_pair(primary_id, member_id)
        if self.repo.get_group_for_primary(primary.id) is not None:
            raise GroupOperationError(f"A group already exists for primary entity {primary.id}.")
        self._ensure_ungrouped(primary, as_role="primary")
        self._ensure_ungrouped(member, as_role="member")

        now = datetime.utcnow()
        try:
            group = self.repo.add_group(
                EntityGroup(
                    kind=primary.kind,
                    primary_entity_id=primary.id,
                    created_by=self.actor_email,
                    created_at=now,
                    updated_at=now,
                )
            )
            self.repo.add_group_member(
                EntityGroupMember(group_id=group.id, member_entity_id=member.id, created_at=now)
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise GroupOperationError("Group creation violated database constraints.") from exc
        logger.info("Created %s group %s with first member %s", primary.kind.value, primary.id, member.id)

    def add_member(self, primary_id: UUID, member_id: UUID) -> None:
        primary, member = self._load_pair(primary_id, member_id)
        group = self.repo.get_group_for_primary(primary.id)
        if group is None:
            raise GroupOperationError(
                f"No group exists for primary entity {primary.id}. Use create_and_add_member instead.",
                status_code=status.HTTP_404_NOT_FOUND,
            )
        self._ensure_ungrouped(member, as_role="member")

        now = datetime.utcnow()
        try:
            self.repo.add_group_member(
                EntityGroupMember(group_id=group.id, member_entity_id=member.id, created_at=now)
            )
            group.updated_at = now
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise GroupOperationError("Member insert violated database constraints.") from exc
        logger.info("Added member %s to %s group %s", member.id, primary.kind.value, primary.id)

    def remove_member(self, primary_id: UUID, member_id: UUID) -> bool:
        group = self.repo.get_group_for_primary(primary_id)
        if group is None:
            raise GroupOperationError(
                f"No group exists for primary entity {primary_id}.",
                status_code=status.HTTP_404_NOT_FOUND,
            )
        row = self.repo.get_group_member(group.id, member_id)
        if row is None:
            raise GroupOperationError(
                f"Entity {member_id} is not a member of the group for {primary_id}.",
                status_code=status.HTTP_404_NOT_FOUND,
            )

        try:
            self.repo.delete_group_member(row)
            dissolved = self.repo.member_count(group.id) == 0
            if dissolved:
                self.repo.delete_group(group)
            else:
                group.updated_at = datetime.utcnow()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise GroupOperationError("Member removal violated database constraints.") from exc
        logger.info("Removed member %s from group %s (dissolved=%s)", member_id, primary_id, dissolved)
        return dissolved

    # ---------- Serialization ----------
    @staticmethod
    def serialize_entity(entity: Entity) -> dict[str, object]:
        return {
            "id": str(entity.id),
            "kind": entity.kind.value,
            "source_system": entity.source_system,
            "external_id": entity.external_id,
            "source_name": entity.source_name,
            "display_name": entity.display_name,
            "label": entity.label,
            "first_seen_month": entity.first_seen_month.isoformat() if entity.first_seen_month else None,
        }

    @staticmethod
    def serialize_entity_ref(entity: EntityRef) -> dict[str, object]:
        return {
            "id": str(entity.id),
            "source_system": entity.source_system,
            "external_id": entity.external_id,
            "source_name": entity.source_name,
            "display_name": entity.display_name,
            "label": entity.label,
        }

    @classmethod
    def serialize_display_entry(cls, entry: DisplayEntry) -> dict[str, object]:
        return {**cls.serialize_entity_ref(entry.entity), "status": entry.status.value}

    @staticmethod
    def serialize_commit_result(result: CommitResult) -> dict[str, object]:
        return {
            "success": result.success,
            "group_dissolved": result.group_dissolved,
            "error": result.error,
            "applied": [
                {
                    "operation": operation.kind.value,
                    "member_id": str(operation.member_id),
                    "dissolved": operation.dissolved,
                }
                for operation in result.applied
            ],
        }

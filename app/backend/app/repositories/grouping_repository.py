"""Repository helpers for entities and canonical groups."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from app.models.entities import Entity, EntityGroup, EntityGroupMember, EntityKind


class GroupingRepository:
    """Persistence operations used by the grouping service."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Entities ----------
    def get_entity(self, entity_id: UUID) -> Entity | None:
        return self.db.scalar(select(Entity).where(Entity.id == entity_id))

    def list_entities(self, kind: EntityKind) -> list[Entity]:
        return self.db.scalars(
            select(Entity)
            .where(Entity.kind == kind)
            .order_by(func.coalesce(Entity.display_name, Entity.source_name).asc(), Entity.id.asc())
        ).all()

    def list_entities_by_ids(self, entity_ids: set[UUID]) -> list[Entity]:
        if not entity_ids:
            return []
        return self.db.scalars(select(Entity).where(Entity.id.in_(entity_ids))).all()

    # ---------- Groups ----------
    def get_group_for_primary(self, primary_entity_id: UUID) -> EntityGroup | None:
        return self.db.scalar(select(EntityGroup).where(EntityGroup.primary_entity_id == primary_entity_id))

    def get_membership(self, member_entity_id: UUID) -> EntityGroupMember | None:
        return self.db.scalar(
            select(EntityGroupMember).where(EntityGroupMember.member_entity_id == member_entity_id)
        )

    def list_memberships(self, kind: EntityKind) -> list[tuple[UUID, UUID]]:
        """Return ``(primary_entity_id, member_entity_id)`` pairs in insertion order."""

        rows = self.db.execute(
            select(EntityGroup.primary_entity_id, EntityGroupMember.member_entity_id)
            .join(EntityGroupMember, EntityGroupMember.group_id == EntityGroup.id)
            .where(EntityGroup.kind == kind)
            .order_by(EntityGroupMember.created_at.asc(), EntityGroupMember.id.asc())
        ).all()
        return [(row[0], row[1]) for row in rows]

    def list_member_entities(self, group_id: UUID) -> list[Entity]:
        return self.db.scalars(
            select(Entity)
            .join(EntityGroupMember, EntityGroupMember.member_entity_id == Entity.id)
            .where(EntityGroupMember.group_id == group_id)
            .order_by(EntityGroupMember.created_at.asc(), EntityGroupMember.id.asc())
        ).all()

    def member_count(self, group_id: UUID) -> int:
        return int(
            self.db.scalar(
                select(func.count()).select_from(EntityGroupMember).where(EntityGroupMember.group_id == group_id)
            )
            or 0
        )

    def get_group_member(self, group_id: UUID, member_entity_id: UUID) -> EntityGroupMember | None:
        return self.db.scalar(
            select(EntityGroupMember).where(
                and_(
                    EntityGroupMember.group_id == group_id,
                    EntityGroupMember.member_entity_id == member_entity_id,
                )
            )
        )

    def add_group(self, group: EntityGroup) -> EntityGroup:
        self.db.add(group)
        self.db.flush()
        return group

    def delete_group(self, group: EntityGroup) -> None:
        self.db.delete(group)
        self.db.flush()

    def add_group_member(self, member: EntityGroupMember) -> EntityGroupMember:
        self.db.add(member)
        self.db.flush()
        return member

    def delete_group_member(self, member: EntityGroupMember) -> None:
        self.db.delete(member)
        self.db.flush()

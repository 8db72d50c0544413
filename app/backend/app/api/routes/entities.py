"""Entity table, canonical mapping and group membership endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext, get_current_user_context, require_admin
from app.db.dependencies import get_db_session
from app.models.entities import EntityKind
from app.services.group_commit import GroupOperationError
from app.services.group_staging import GroupRole
from app.services.grouping_service import GroupingService

router = APIRouter(prefix="/entities", tags=["entities"])


class EntityRenamePayload(BaseModel):
    display_name: str | None = Field(default=None, max_length=255)


class GroupStagePayload(BaseModel):
    additions: list[UUID] = Field(default_factory=list)
    removals: list[UUID] = Field(default_factory=list)


class GroupCommitPayload(GroupStagePayload):
    has_existing_group: bool | None = None


class GroupMemberAddPayload(BaseModel):
    member_id: UUID


def _grouping_service(db: Session, context: RequestUserContext | None = None) -> GroupingService:
    return GroupingService(db, actor_email=context.email if context else None)


@router.get("/{kind}")
def list_table_entities(
    kind: EntityKind,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db)
    rows = service.list_table_entities(kind)
    return {
        "items": [
            {
                **service.serialize_entity(row.entity),
                "grouping_role": row.role.value,
                "member_count": row.member_count,
            }
            for row in rows
        ]
    }


@router.get("/{kind}/canonical-mapping")
def get_canonical_mapping(
    kind: EntityKind,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db)
    return {
        "items": [
            {
                "entity_id": str(row.entity.id),
                "canonical_entity_id": str(row.canonical_entity_id),
                "role": row.role.value,
            }
            for row in service.canonical_mapping(kind)
        ]
    }


@router.patch("/{kind}/{entity_id}")
def rename_entity(
    kind: EntityKind,
    entity_id: UUID,
    payload: EntityRenamePayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db, context)
    entity = service.rename_entity(kind, entity_id, payload.display_name)
    return service.serialize_entity(entity)


@router.get("/{kind}/{entity_id}/group")
def get_group(
    kind: EntityKind,
    entity_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db)
    role = service.role_of(kind, entity_id)
    members = service.members_of(kind, entity_id) if role is GroupRole.PRIMARY else []
    return {
        "entity_id": str(entity_id),
        "role": role.value,
        "members": [service.serialize_entity(member) for member in members],
    }


@router.post("/{kind}/{entity_id}/group/preview")
def preview_group_changes(
    kind: EntityKind,
    entity_id: UUID,
    payload: GroupStagePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db)
    preview = service.preview(kind, entity_id, addition_ids=payload.additions, removal_ids=payload.removals)
    return {
        "items": [service.serialize_display_entry(entry) for entry in preview.items],
        "candidates": [service.serialize_entity_ref(entity) for entity in preview.candidates],
    }


@router.post("/{kind}/{entity_id}/group/commit")
def commit_group_changes(
    kind: EntityKind,
    entity_id: UUID,
    payload: GroupCommitPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db, context)
    result = service.commit_changes(
        kind,
        entity_id,
        has_existing_group=payload.has_existing_group,
        addition_ids=payload.additions,
        removal_ids=payload.removals,
    )
    return service.serialize_commit_result(result)


@router.post("/{kind}/{entity_id}/group/members", status_code=201)
def add_group_member(
    kind: EntityKind,
    entity_id: UUID,
    payload: GroupMemberAddPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db, context)
    role = service.role_of(kind, entity_id)
    try:
        if role is GroupRole.PRIMARY:
            service.add_member(entity_id, payload.member_id)
        else:
            service.create_and_add_member(entity_id, payload.member_id)
    except GroupOperationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return {
        "entity_id": str(entity_id),
        "role": GroupRole.PRIMARY.value,
        "members": [service.serialize_entity(member) for member in service.members_of(kind, entity_id)],
    }


@router.delete("/{kind}/{entity_id}/group/members/{member_id}")
def remove_group_member(
    kind: EntityKind,
    entity_id: UUID,
    member_id: UUID,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _grouping_service(db, context)
    service.get_entity(kind, entity_id)
    try:
        dissolved = service.remove_member(entity_id, member_id)
    except GroupOperationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return {"entity_id": str(entity_id), "member_id": str(member_id), "group_dissolved": dissolved}

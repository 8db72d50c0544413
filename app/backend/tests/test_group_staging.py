from __future__ import annotations

import uuid

import pytest

from app.services.group_staging import (
    EntityRef,
    GroupIndex,
    GroupRole,
    MemberStatus,
    StagedChanges,
    eligible_candidates,
    reconcile_display,
)


def _ref(name: str, display_name: str | None = None) -> EntityRef:
    return EntityRef(
        id=uuid.uuid4(),
        source_system="toggl",
        external_id=f"ext-{name}",
        source_name=name,
        display_name=display_name,
    )


def test_group_index_resolves_roles_and_canonical_ids() -> None:
    primary, member, loner = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    index = GroupIndex([(primary, member)])

    assert index.role_of(primary) is GroupRole.PRIMARY
    assert index.role_of(member) is GroupRole.MEMBER
    assert index.role_of(loner) is GroupRole.NONE
    assert index.member_ids_of(primary) == [member]
    assert index.member_ids_of(loner) == []
    assert index.primary_of(member) == primary
    assert index.canonical_id_of(member) == primary
    assert index.canonical_id_of(primary) == primary
    assert index.canonical_id_of(loner) == loner


def test_group_index_keeps_member_order() -> None:
    primary = uuid.uuid4()
    members = [uuid.uuid4() for _ in range(3)]
    index = GroupIndex([(primary, member_id) for member_id in members])

    assert index.member_ids_of(primary) == members


def test_group_index_rejects_inconsistent_memberships() -> None:
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    with pytest.raises(ValueError, match="its own group"):
        GroupIndex([(a, a)])
    with pytest.raises(ValueError, match="more than one group"):
        GroupIndex([(a, c), (b, c)])
    with pytest.raises(ValueError, match="both primary and member"):
        GroupIndex([(a, b), (b, c)])


def test_stage_addition_ignores_duplicates_and_cancels_removal() -> None:
    existing = _ref("Existing")
    candidate = _ref("Candidate")
    staged = StagedChanges()

    staged.stage_addition(candidate)
    staged.stage_addition(candidate)
    assert staged.addition_ids == [candidate.id]

    staged.stage_removal(existing.id, [existing.id])
    assert staged.removals == {existing.id}

    staged.stage_addition(existing)
    assert staged.removals == set()
    assert staged.addition_ids == [candidate.id]


def test_stage_removal_of_pending_addition_unstages_it() -> None:
    candidate = _ref("Candidate")
    staged = StagedChanges()
    staged.stage_addition(candidate)

    staged.stage_removal(candidate.id, [])

    assert staged.additions == []
    assert staged.removals == set()
    assert staged.has_changes is False


def test_stage_removal_rejects_non_member() -> None:
    staged = StagedChanges()

    with pytest.raises(ValueError, match="not a persisted member"):
        staged.stage_removal(uuid.uuid4(), [uuid.uuid4()])


def test_undo_removal_and_clear() -> None:
    member = _ref("Member")
    candidate = _ref("Candidate")
    staged = StagedChanges()
    staged.stage_removal(member.id, [member.id])
    staged.stage_addition(candidate)

    staged.undo_removal(member.id)
    assert staged.removals == set()
    assert staged.has_changes is True

    staged.clear()
    assert staged.has_changes is False


def test_reconcile_display_tags_persisted_and_pending_entries() -> None:
    kept = _ref("Kept")
    dropped = _ref("Dropped")
    added = _ref("Added")
    staged = StagedChanges()
    staged.stage_removal(dropped.id, [kept.id, dropped.id])
    staged.stage_addition(added)

    entries = reconcile_display([kept, dropped], staged)

    assert [(entry.entity.id, entry.status) for entry in entries] == [
        (kept.id, MemberStatus.PERSISTED),
        (dropped.id, MemberStatus.PENDING_REMOVAL),
        (added.id, MemberStatus.PENDING_ADDITION),
    ]


def test_eligible_candidates_excludes_primary_members_and_staged_additions() -> None:
    primary = _ref("Primary")
    member = _ref("Member")
    removed_member = _ref("Removed")
    staged_addition = _ref("Staged")
    free = _ref("Free")
    staged = StagedChanges()
    staged.stage_removal(removed_member.id, [member.id, removed_member.id])
    staged.stage_addition(staged_addition)

    candidates = eligible_candidates(
        [primary, member, removed_member, staged_addition, free],
        primary_id=primary.id,
        persisted_member_ids=[member.id, removed_member.id],
        staged=staged,
    )

    assert [entity.id for entity in candidates] == [removed_member.id, free.id]


def test_eligible_candidates_skip_entities_grouped_elsewhere() -> None:
    primary = _ref("Primary")
    member = _ref("Member")
    other_primary = _ref("Other primary")
    other_member = _ref("Other member")
    free = _ref("Free")
    index = GroupIndex([(primary.id, member.id), (other_primary.id, other_member.id)])
    staged = StagedChanges()
    staged.stage_removal(member.id, [member.id])

    candidates = eligible_candidates(
        [primary, member, other_primary, other_member, free],
        primary_id=primary.id,
        persisted_member_ids=[member.id],
        staged=staged,
        grouped_ids=index.grouped_ids(),
    )

    assert index.grouped_ids() == {primary.id, member.id, other_primary.id, other_member.id}
    assert [entity.id for entity in candidates] == [member.id, free.id]


def test_entity_ref_label_prefers_display_name() -> None:
    assert _ref("Acme Inc", display_name="ACME").label == "ACME"
    assert _ref("Acme Inc").label == "Acme Inc"

from __future__ import annotations

import uuid
from uuid import UUID

from app.services.group_commit import GroupOperationError, OperationKind, commit_staged_changes


class FakeGroupStore:
    """In-memory group store recording every call it receives."""

    def __init__(self, groups: dict[UUID, list[UUID]] | None = None, *, fail_on: UUID | None = None) -> None:
        self.groups = {primary: list(members) for primary, members in (groups or {}).items()}
        self.fail_on = fail_on
        self.calls: list[tuple[str, UUID, UUID]] = []

    def _maybe_fail(self, member_id: UUID) -> None:
        if member_id == self.fail_on:
            raise GroupOperationError("Member entity not found.", status_code=404)

    def create_and_add_member(self, primary_id: UUID, member_id: UUID) -> None:
        self.calls.append(("create_and_add_member", primary_id, member_id))
        self._maybe_fail(member_id)
        if primary_id in self.groups:
            raise GroupOperationError("A group already exists.")
        self.groups[primary_id] = [member_id]

    def add_member(self, primary_id: UUID, member_id: UUID) -> None:
        self.calls.append(("add_member", primary_id, member_id))
        self._maybe_fail(member_id)
        if primary_id not in self.groups:
            raise GroupOperationError("No group exists.", status_code=404)
        self.groups[primary_id].append(member_id)

    def remove_member(self, primary_id: UUID, member_id: UUID) -> bool:
        self.calls.append(("remove_member", primary_id, member_id))
        self._maybe_fail(member_id)
        members = self.groups[primary_id]
        members.remove(member_id)
        if not members:
            del self.groups[primary_id]
            return True
        return False


def test_first_addition_to_ungrouped_primary_creates_group() -> None:
    a, b = uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore()

    result = commit_staged_changes(store, primary_id=a, has_existing_group=False, additions=[b], removals=[])

    assert result.success is True
    assert result.group_dissolved is False
    assert store.calls == [("create_and_add_member", a, b)]
    assert store.groups == {a: [b]}


def test_additions_after_the_first_use_add_member() -> None:
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore()

    result = commit_staged_changes(store, primary_id=a, has_existing_group=False, additions=[b, c], removals=[])

    assert result.success is True
    assert [call[0] for call in store.calls] == ["create_and_add_member", "add_member"]
    assert store.groups == {a: [b, c]}


def test_existing_group_only_uses_add_member() -> None:
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore({a: [b]})

    result = commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[c], removals=[])

    assert result.success is True
    assert store.calls == [("add_member", a, c)]


def test_replacing_all_members_recreates_dissolved_group() -> None:
    a, b, c, d = (uuid.uuid4() for _ in range(4))
    store = FakeGroupStore({a: [b, c]})

    result = commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[d], removals=[b, c])

    assert result.success is True
    assert result.group_dissolved is False
    assert store.calls == [
        ("remove_member", a, b),
        ("remove_member", a, c),
        ("create_and_add_member", a, d),
    ]
    assert [(op.kind, op.dissolved) for op in result.applied] == [
        (OperationKind.REMOVE_MEMBER, False),
        (OperationKind.REMOVE_MEMBER, True),
        (OperationKind.CREATE_AND_ADD_MEMBER, False),
    ]
    assert store.groups == {a: [d]}


def test_removals_run_before_additions_regardless_of_input_order() -> None:
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore({a: [b]})

    commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[c], removals=[b])

    assert [call[0] for call in store.calls] == ["remove_member", "create_and_add_member"]


def test_removing_last_member_reports_dissolved_group() -> None:
    a, b = uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore({a: [b]})

    result = commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[], removals=[b])

    assert result.success is True
    assert result.group_dissolved is True
    assert store.groups == {}


def test_dissolved_flag_follows_latest_removal() -> None:
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore({a: [b, c]})

    result = commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[], removals=[b])

    assert result.group_dissolved is False
    assert store.groups == {a: [c]}


def test_failed_addition_keeps_applied_removals() -> None:
    a, b, c, d, e = (uuid.uuid4() for _ in range(5))
    store = FakeGroupStore({a: [b, c, d]}, fail_on=e)

    result = commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[e], removals=[b, c])

    assert result.success is False
    assert result.group_dissolved is False
    assert result.error == "Failed to add member: Member entity not found."
    assert [op.member_id for op in result.applied] == [b, c]
    assert store.groups == {a: [d]}


def test_failure_stops_remaining_operations() -> None:
    a, b, c, d = (uuid.uuid4() for _ in range(4))
    store = FakeGroupStore({a: [b, c]}, fail_on=b)

    result = commit_staged_changes(store, primary_id=a, has_existing_group=True, additions=[d], removals=[b, c])

    assert result.success is False
    assert result.error == "Failed to remove member: Member entity not found."
    assert store.calls == [("remove_member", a, b)]
    assert result.applied == []


def test_failed_group_creation_is_reported_as_create_error() -> None:
    a, b = uuid.uuid4(), uuid.uuid4()
    store = FakeGroupStore({a: [uuid.uuid4()]})

    result = commit_staged_changes(store, primary_id=a, has_existing_group=False, additions=[b], removals=[])

    assert result.success is False
    assert result.error == "Failed to create group: A group already exists."


def test_empty_commit_is_a_successful_no_op() -> None:
    store = FakeGroupStore()

    result = commit_staged_changes(store, primary_id=uuid.uuid4(), has_existing_group=False, additions=[], removals=[])

    assert result.success is True
    assert result.group_dissolved is False
    assert store.calls == []

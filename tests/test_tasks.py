import pytest

from auth import Identity
from errors import NotFoundError, ValidationError

ALICE = Identity(user_id=1, username="alice")
BOB = Identity(user_id=2, username="bob")


@pytest.fixture()
def users(auth_service):
    # SQL storage needs the owners to exist for the foreign key.
    auth_service.register("alice", "pw1")
    auth_service.register("bob", "pw2")


def test_create_returns_fresh_incomplete_task(task_service, users):
    first = task_service.create(ALICE, "Buy milk")
    second = task_service.create(ALICE, "Buy milk")
    assert first.title == "Buy milk"
    assert first.completed is False
    assert first.owner_id == ALICE.user_id
    assert first.id != second.id


@pytest.mark.parametrize("title", ["", "   ", None, 42])
def test_create_rejects_missing_title(task_service, users, title):
    with pytest.raises(ValidationError):
        task_service.create(ALICE, title)


def test_create_strips_title(task_service, users):
    assert task_service.create(ALICE, "  Walk dog ").title == "Walk dog"


def test_create_rejects_overlong_title(task_service, users):
    with pytest.raises(ValidationError):
        task_service.create(ALICE, "x" * 501)


def test_list_is_scoped_to_owner(task_service, users):
    a1 = task_service.create(ALICE, "A1")
    a2 = task_service.create(ALICE, "A2")
    b1 = task_service.create(BOB, "B1")

    assert [t.id for t in task_service.list(ALICE)] == [a1.id, a2.id]
    assert [t.id for t in task_service.list(BOB)] == [b1.id]


def test_other_owner_cannot_update_or_delete(task_service, users):
    task = task_service.create(ALICE, "secret")

    with pytest.raises(NotFoundError):
        task_service.update(BOB, task.id, completed=True)
    with pytest.raises(NotFoundError):
        task_service.update(BOB, task.id)
    with pytest.raises(NotFoundError):
        task_service.delete(BOB, task.id)

    assert task_service.list(ALICE) == [task]


def test_foreign_task_looks_like_missing_task(task_service, users):
    task = task_service.create(ALICE, "secret")

    with pytest.raises(NotFoundError) as foreign:
        task_service.update(BOB, task.id, title="mine")
    with pytest.raises(NotFoundError) as missing:
        task_service.update(BOB, task.id + 1000, title="mine")
    assert foreign.value.message == missing.value.message


def test_partial_update_keeps_other_fields(task_service, users):
    task = task_service.create(ALICE, "X")

    updated = task_service.update(ALICE, task.id, completed=True)
    assert (updated.title, updated.completed) == ("X", True)

    renamed = task_service.update(ALICE, task.id, title="Y")
    assert (renamed.title, renamed.completed) == ("Y", True)

    assert task_service.list(ALICE) == [renamed]


def test_update_with_empty_patch_returns_task(task_service, users):
    task = task_service.create(ALICE, "X")
    assert task_service.update(ALICE, task.id) == task


@pytest.mark.parametrize("patch", [{"title": ""}, {"title": None}, {"completed": "yes"}, {"completed": 1}])
def test_update_validates_fields(task_service, users, patch):
    task = task_service.create(ALICE, "X")
    with pytest.raises(ValidationError):
        task_service.update(ALICE, task.id, **patch)


def test_delete_is_final(task_service, users):
    task = task_service.create(ALICE, "gone")
    task_service.delete(ALICE, task.id)

    assert task_service.list(ALICE) == []
    with pytest.raises(NotFoundError):
        task_service.update(ALICE, task.id, completed=True)
    with pytest.raises(NotFoundError):
        task_service.delete(ALICE, task.id)


def test_deleted_id_is_never_reissued(task_service, users):
    first = task_service.create(ALICE, "one")
    last = task_service.create(ALICE, "two")
    task_service.delete(ALICE, last.id)

    fresh = task_service.create(ALICE, "three")
    assert fresh.id not in {first.id, last.id}
    assert fresh.id > last.id

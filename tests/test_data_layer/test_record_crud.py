"""
CRUD behaviour of the active-record layer, using ``User`` as the entity.
"""
from __future__ import annotations

import pytest

from erp.errors import ConstraintViolation, NotFound, ValidationError
from erp.models.security import Role, User


def test_create_assigns_id_and_timestamps(users):
    user = users.create(User(username="neo", nickname="Neo", age=30))

    assert user.id is not None and user.id > 0
    assert user.created_at is not None
    assert user.updated_at is not None
    assert user.deleted_at is None

    loaded = users.read(user.id)
    assert loaded.username == "neo"
    assert loaded.nickname == "Neo"
    assert loaded.age == 30
    assert loaded.status == 1


def test_ids_increase_per_entity(users):
    first = users.create(User(username="a1"))
    second = users.create(User(username="a2"))
    assert second.id > first.id


def test_create_duplicate_raises_constraint_violation(users):
    users.create(User(username="dup"))
    with pytest.raises(ConstraintViolation):
        users.create(User(username="dup"))


def test_create_rejects_other_entity(users):
    with pytest.raises(ValidationError):
        users.create(Role(name="admin"))


def test_read_missing_raises_not_found(users):
    with pytest.raises(NotFound):
        users.read(12345)


def test_update_writes_only_non_zero_fields(users):
    user = users.create(User(username="trin", nickname="Trinity", email="t@example.com", age=28))

    # Only nickname carries a value; everything else is a zero value.
    users.update(User(id=user.id, username="", nickname="Trin", email="", age=0, status=0))

    loaded = users.read(user.id)
    assert loaded.nickname == "Trin"
    assert loaded.username == "trin"
    assert loaded.email == "t@example.com"
    assert loaded.age == 28
    assert loaded.status == 1


def test_update_cannot_clear_a_field_without_selection(users):
    user = users.create(User(username="morph", age=40))
    user.age = 0
    users.update(user)
    assert users.read(user.id).age == 40


def test_update_with_selected_column_writes_zero_value(users):
    user = users.create(User(username="morph", nickname="Morpheus", age=40))
    user.age = 0
    user.nickname = ""

    users.select("age").update(user)

    loaded = users.read(user.id)
    assert loaded.age == 0
    assert loaded.nickname == "Morpheus"


def test_update_with_all_fields_overwrites_zero_values(users):
    user = users.create(User(username="oracle", nickname="Oracle", email="o@example.com", age=60))

    users.select("*").update(
        User(
            id=user.id,
            username="oracle",
            nickname="",
            email="",
            phone="",
            password="",
            gender="",
            age=0,
            status=0,
        )
    )

    loaded = users.read(user.id)
    assert loaded.nickname == ""
    assert loaded.email == ""
    assert loaded.age == 0
    assert loaded.status == 0


def test_update_bumps_updated_at(users):
    user = users.create(User(username="tank"))
    before = users.read(user.id).updated_at

    users.update(User(id=user.id, nickname="Tank"))

    assert users.read(user.id).updated_at >= before


def test_update_requires_id(users):
    with pytest.raises(ValidationError):
        users.update(User(nickname="nobody"))


def test_update_missing_row_raises_not_found(users):
    with pytest.raises(NotFound):
        users.update(User(id=999, nickname="ghost"))


def test_update_unique_conflict_raises_constraint_violation(users):
    users.create(User(username="taken"))
    other = users.create(User(username="free"))
    with pytest.raises(ConstraintViolation):
        users.update(User(id=other.id, username="taken"))


def test_soft_delete_round_trip(users):
    user = users.create(User(username="cypher"))

    users.delete(user.id)

    with pytest.raises(NotFound):
        users.read(user.id)

    deleted = users.unscoped().read(user.id)
    assert deleted.username == "cypher"
    assert deleted.deleted_at is not None

    assert users.where(User.username == "cypher").count() == 0
    assert users.unscoped().where(User.username == "cypher").count() == 1


def test_delete_twice_raises_not_found(users):
    user = users.create(User(username="mouse"))
    users.delete(user.id)
    with pytest.raises(NotFound):
        users.delete(user.id)


def test_update_skips_soft_deleted_rows(users):
    user = users.create(User(username="switch"))
    users.delete(user.id)
    with pytest.raises(NotFound):
        users.update(User(id=user.id, nickname="Switch"))


def test_batch_create(users):
    created = users.batch_create([User(username=f"batch{i}") for i in range(5)], batch_size=2)

    assert all(u.id for u in created)
    assert users.where(User.username.like("batch%")).count() == 5


def test_batch_create_non_positive_batch_size_uses_default(users):
    created = users.batch_create([User(username="b1"), User(username="b2")], batch_size=0)
    assert len(created) == 2


def test_batch_create_is_all_or_nothing(users):
    users.create(User(username="clash"))
    with pytest.raises(ConstraintViolation):
        users.batch_create([User(username="ok1"), User(username="clash")])
    assert not users.where(User.username == "ok1").exist()


def test_update_columns_requires_where(users):
    with pytest.raises(ValidationError):
        users.update_columns({"age": 0})


def test_update_columns_writes_zero_values(users):
    users.create(User(username="u1", age=20))
    users.create(User(username="u2", age=20))
    users.create(User(username="u3", age=50))

    affected = users.where(User.age == 20).update_columns({"age": 0})

    assert affected == 2
    assert sorted(users.order(User.id).pluck("age")) == [0, 0, 50]


def test_update_columns_rejects_unknown_column(users):
    with pytest.raises(ValidationError):
        users.where(User.id == 1).update_columns({"nope": 1})


def test_pluck_and_exist(users):
    users.create(User(username="p1"))
    users.create(User(username="p2"))

    assert users.order(User.id).pluck(User.username) == ["p1", "p2"]
    assert users.where(User.username == "p1").exist() is True
    assert users.where(User.username == "p3").exist() is False


def test_first_or_create(users):
    first = users.first_or_create(User(username="seraph", nickname="Seraph"))
    again = users.first_or_create(User(username="seraph"))

    assert again.id == first.id
    assert users.where(User.username == "seraph").count() == 1


def test_one_raises_not_found_when_empty(users):
    with pytest.raises(NotFound):
        users.where(User.username == "nobody").one()

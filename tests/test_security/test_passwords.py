from __future__ import annotations

import pytest

from erp.models.security import User
from erp.security.passwords import hash_password, verify_password


def test_hash_and_verify():
    hashed = hash_password("secret123")

    assert hashed != "secret123"
    assert hashed.startswith("$2")
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)


def test_hash_is_salted():
    assert hash_password("secret123") != hash_password("secret123")


def test_empty_password_cannot_be_hashed():
    with pytest.raises(ValueError):
        hash_password("")


@pytest.mark.parametrize("password, stored", [("", "$2b$04$abc"), ("secret123", ""), ("secret123", "plain-text")])
def test_verify_rejects_unusable_input(password, stored):
    assert verify_password(password, stored) is False


def test_user_password_helpers():
    user = User(username="neo")
    user.set_password("secret123")

    assert user.password != "secret123"
    assert user.check_password("secret123")
    assert not user.check_password("nope")

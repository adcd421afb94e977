"""Password hashing tests."""

from studyportal.services.passwords import (
    PasswordHasher,
    is_legacy_hash,
    legacy_password_hash,
)

SECRET = "unit-test-secret-value"


def make_hasher(secret: str = SECRET) -> PasswordHasher:
    return PasswordHasher(secret=secret, rounds=4)


def test_hash_and_verify():
    hasher = make_hasher()
    stored = hasher.hash("correct-horse")

    assert stored.startswith("$2")
    assert hasher.verify("correct-horse", stored) is True
    assert hasher.verify("wrong-horse", stored) is False


def test_hashes_are_salted():
    hasher = make_hasher()
    assert hasher.hash("correct-horse") != hasher.hash("correct-horse")


def test_secret_acts_as_pepper():
    stored = make_hasher().hash("correct-horse")
    assert make_hasher("other-secret-value").verify("correct-horse", stored) is False


def test_long_passwords_are_distinguished():
    hasher = make_hasher()
    base = "x" * 80
    stored = hasher.hash(base + "a")
    assert hasher.verify(base + "b", stored) is False


def test_verify_without_stored_hash():
    hasher = make_hasher()
    assert hasher.verify("anything", None) is False
    assert hasher.verify("anything", "") is False


def test_verify_garbage_hash():
    assert make_hasher().verify("anything", "not-a-hash") is False


def test_legacy_hash_accepted():
    hasher = make_hasher()
    stored = legacy_password_hash("correct-horse", SECRET)

    assert is_legacy_hash(stored)
    assert hasher.verify("correct-horse", stored) is True
    assert hasher.verify("wrong-horse", stored) is False


def test_needs_rehash():
    hasher = make_hasher()
    assert hasher.needs_rehash(legacy_password_hash("pw", SECRET)) is True
    assert hasher.needs_rehash(hasher.hash("pw")) is False
    assert hasher.needs_rehash(None) is False

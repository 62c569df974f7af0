"""
tests/test_passwords.py - bcrypt credential verification
"""
from __future__ import annotations

from subspace.core.passwords import (
    hash_password,
    verify_admin_password,
    verify_password,
    verify_superintendent,
)
from subspace.repositories import InMemorySuperintendentDirectory


def test_hash_is_salted():
    first = hash_password("s3cret", rounds=4)
    second = hash_password("s3cret", rounds=4)
    assert first != second
    assert verify_password("s3cret", first)
    assert verify_password("s3cret", second)


def test_wrong_password_rejected():
    hashed = hash_password("s3cret", rounds=4)
    assert not verify_password("S3cret", hashed)
    assert not verify_password("", hashed)


def test_malformed_hash_rejected_without_raising():
    assert not verify_password("s3cret", "")
    assert not verify_password("s3cret", "not-a-bcrypt-hash")
    assert not verify_password("s3cret", hash_password("s3cret", rounds=4)[:20])


def test_admin_password_against_explicit_hash():
    hashed = hash_password("admin-pass", rounds=4)
    assert verify_admin_password("admin-pass", hashed)
    assert not verify_admin_password("nope", hashed)


def test_admin_login_closed_without_configured_hash():
    assert not verify_admin_password("anything", "")
    assert not verify_admin_password("", "")


def test_admin_password_uses_configured_hash(admin_password):
    assert verify_admin_password(admin_password)
    assert not verify_admin_password(admin_password + "x")


def test_superintendent_lookup():
    directory = InMemorySuperintendentDirectory()
    directory.add("Pat@Site.example.com", "Pat", "hunter22", rounds=4)

    account = verify_superintendent("pat@site.example.com", "hunter22", directory)
    assert account is not None
    assert account.name == "Pat"
    assert verify_superintendent("PAT@site.example.com ", "hunter22", directory) is not None
    assert verify_superintendent("pat@site.example.com", "wrong", directory) is None
    assert verify_superintendent("nobody@site.example.com", "hunter22", directory) is None


def test_password_change_replaces_hash():
    directory = InMemorySuperintendentDirectory()
    directory.add("pat@site.example.com", "Pat", "old-pass", rounds=4)
    assert directory.set_password("pat@site.example.com", "new-pass", rounds=4)
    assert verify_superintendent("pat@site.example.com", "old-pass", directory) is None
    assert verify_superintendent("pat@site.example.com", "new-pass", directory) is not None
    assert not directory.set_password("ghost@site.example.com", "x", rounds=4)

"""
tests/test_tokens.py -- Password hashing, bearer tokens and verification codes.
"""

from __future__ import annotations

import string

import pytest

from auth.tokens import (
    TOKEN_BYTES,
    BcryptHasher,
    generate_auth_code,
    generate_token,
    hash_password,
    verify_password,
)


def test_hash_and_verify():
    digest = hash_password("s3cret-pass", rounds=4)
    assert digest != "s3cret-pass"
    assert verify_password("s3cret-pass", digest) is True
    assert verify_password("wrong-pass", digest) is False


def test_hash_is_salted():
    assert hash_password("s3cret-pass", rounds=4) != hash_password("s3cret-pass", rounds=4)


def test_malformed_digest_is_a_mismatch():
    assert verify_password("s3cret-pass", "not-a-bcrypt-hash") is False


def test_bcrypt_hasher_uses_rounds():
    hasher = BcryptHasher(rounds=5)
    digest = hasher.hash("s3cret-pass")
    assert digest.startswith("$2b$05$")
    assert hasher.verify("s3cret-pass", digest)


def test_token_shape():
    token = generate_token()
    assert len(token) == TOKEN_BYTES * 2 == 64
    assert set(token) <= set(string.hexdigits.lower())


def test_tokens_are_unique():
    assert len({generate_token() for _ in range(100)}) == 100


@pytest.mark.parametrize("length", [4, 6, 12])
def test_auth_code_shape(length):
    code = generate_auth_code(length)
    assert len(code) == length
    assert set(code) <= set(string.digits)


def test_auth_code_rejects_non_positive_length():
    with pytest.raises(ValueError):
        generate_auth_code(0)

"""Tests for conversation key derivation."""

import hashlib

from huddle_chat.services.keys import derive_chat_key, generate_secure_key


def test_derive_chat_key_is_symmetric() -> None:
    assert derive_chat_key("u1", "u2") == derive_chat_key("u2", "u1")


def test_derive_chat_key_hashes_sorted_ids() -> None:
    expected = hashlib.sha256(b"alice-bob").hexdigest()
    assert derive_chat_key("bob", "alice") == expected
    assert len(expected) == 64


def test_distinct_pairs_get_distinct_keys() -> None:
    assert derive_chat_key("u1", "u2") != derive_chat_key("u1", "u3")


def test_generate_secure_key() -> None:
    first = generate_secure_key()
    assert len(first) == 64
    int(first, 16)
    assert first != generate_secure_key()


def test_separator_in_ids_is_not_escaped() -> None:
    # Fixed joining format: a hyphen inside an id moves across the boundary.
    assert derive_chat_key("a-b", "c") == derive_chat_key("a", "b-c")
    assert derive_chat_key("a-b", "c") == hashlib.sha256(b"a-b-c").hexdigest()

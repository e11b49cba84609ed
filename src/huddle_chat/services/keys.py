# src/huddle_chat/services/keys.py
"""Conversation key derivation."""

from __future__ import annotations

import hashlib
import secrets

# Ids are joined unescaped, so pairs such as ("a-b", "c") and ("a", "b-c") share
# a key. Existing ciphertext is bound to this format. Keys stay distinct per
# pair while ids are fixed-length (UUIDs) or contain no hyphen.
KEY_SEPARATOR = "-"


def derive_chat_key(user_a: str, user_b: str) -> str:
    """Derive the symmetric key shared by two participants.

    The ids are sorted before hashing so either participant computes the same
    key. The key is never stored or transmitted.

    Args:
        user_a: Identifier of one participant
        user_b: Identifier of the other participant

    Returns:
        Hex-encoded SHA-256 digest (64 characters)
    """
    sorted_ids = sorted((user_a, user_b))
    return hashlib.sha256(KEY_SEPARATOR.join(sorted_ids).encode()).hexdigest()


def generate_secure_key() -> str:
    """Return 256 random bits, hex encoded."""
    return secrets.token_hex(32)

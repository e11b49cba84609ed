"""Tests for the fail-open message codec."""

import base64

import pytest

from huddle_chat.services.codec import SALTED_MAGIC, MessageCodec
from huddle_chat.services.keys import derive_chat_key

KEY = derive_chat_key("u1", "u2")


@pytest.fixture()
def codec() -> MessageCodec:
    return MessageCodec()


def test_round_trip(codec: MessageCodec) -> None:
    ciphertext = codec.encrypt("hello there", KEY)
    assert ciphertext != "hello there"
    assert codec.decrypt(ciphertext, KEY) == "hello there"
    assert codec.stats.total_fallbacks == 0


def test_round_trip_unicode(codec: MessageCodec) -> None:
    text = "ça va? 📷 Photo"
    assert codec.decrypt(codec.encrypt(text, KEY), KEY) == text


def test_ciphertext_uses_salted_envelope(codec: MessageCodec) -> None:
    ciphertext = codec.encrypt("hi", KEY)
    assert ciphertext.startswith("U2FsdGVkX1")
    raw = base64.b64decode(ciphertext)
    assert raw[:8] == SALTED_MAGIC
    assert (len(raw) - 16) % 16 == 0


def test_salt_makes_ciphertexts_differ(codec: MessageCodec) -> None:
    assert codec.encrypt("same text", KEY) != codec.encrypt("same text", KEY)


def test_plaintext_input_is_returned_unchanged(codec: MessageCodec) -> None:
    assert codec.decrypt("legacy plaintext row", KEY) == "legacy plaintext row"
    assert codec.stats.decrypt_fallbacks == 1


def test_wrong_key_falls_back_to_input(codec: MessageCodec) -> None:
    ciphertext = codec.encrypt("secret", KEY)
    result = codec.decrypt(ciphertext, derive_chat_key("u1", "u3"))
    assert result == ciphertext
    assert codec.stats.decrypt_fallbacks == 1


def test_truncated_envelope_falls_back(codec: MessageCodec) -> None:
    truncated = base64.b64encode(SALTED_MAGIC + b"12345678" + b"short").decode()
    assert codec.decrypt(truncated, KEY) == truncated
    assert codec.stats.total_fallbacks == 1


def test_encrypt_failure_returns_plaintext(codec: MessageCodec, mocker) -> None:
    mocker.patch(
        "huddle_chat.services.codec._evp_bytes_to_key",
        side_effect=ValueError("bad key material"),
    )
    assert codec.encrypt("hello", KEY) == "hello"
    assert codec.stats.encrypt_fallbacks == 1
    assert codec.stats.total_fallbacks == 1


def test_disabled_codec_passes_through() -> None:
    codec = MessageCodec(enabled=False)
    assert codec.encrypt("plain", KEY) == "plain"
    assert codec.decrypt("plain", KEY) == "plain"
    assert codec.stats.total_fallbacks == 0

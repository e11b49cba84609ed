# src/huddle_chat/services/codec.py
"""Symmetric message encryption with a fail-open policy.

Ciphertexts use the OpenSSL ``Salted__`` passphrase envelope: an 8 byte salt,
AES-256-CBC key and IV stretched from the passphrase with MD5
EVP_BytesToKey, PKCS7 padding, base64 text. This is the format the web client
has always written, so rows already in the store remain readable.

Encryption never blocks messaging. When either direction fails the codec
returns its input unchanged, logs a warning and counts the fallback in
``MessageCodec.stats``.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

SALTED_MAGIC = b"Salted__"
SALT_BYTES = 8
KEY_BYTES = 32
IV_BYTES = 16
BLOCK_BITS = 128


@dataclass
class CodecStats:
    """Counters exposing how often the codec fell back to plaintext."""

    encrypt_fallbacks: int = 0
    decrypt_fallbacks: int = 0

    @property
    def total_fallbacks(self) -> int:
        """Return the number of fallbacks in either direction."""
        return self.encrypt_fallbacks + self.decrypt_fallbacks


def _evp_bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """Stretch a passphrase into an AES key and IV (OpenSSL EVP_BytesToKey, MD5)."""
    derived = b""
    block = b""
    while len(derived) < KEY_BYTES + IV_BYTES:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:KEY_BYTES], derived[KEY_BYTES:KEY_BYTES + IV_BYTES]


class MessageCodec:
    """Encrypts and decrypts message bodies with a conversation key."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.stats = CodecStats()

    def encrypt(self, plaintext: str, key: str) -> str:
        """Encrypt ``plaintext`` with ``key``.

        Returns the plaintext itself if encryption fails.
        """
        if not self.enabled:
            return plaintext
        try:
            salt = os.urandom(SALT_BYTES)
            aes_key, iv = _evp_bytes_to_key(key.encode(), salt)
            padder = padding.PKCS7(BLOCK_BITS).padder()
            padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError) as err:
            self.stats.encrypt_fallbacks += 1
            logger.warning("Message encryption failed, storing plaintext: %s", err)
            return plaintext
        return base64.b64encode(SALTED_MAGIC + salt + ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str, key: str) -> str:
        """Decrypt ``ciphertext`` with ``key``.

        Input that is not a valid envelope for ``key`` is treated as plaintext
        and returned unchanged.
        """
        if not self.enabled:
            return ciphertext
        try:
            return self._decrypt(ciphertext, key)
        except ValueError as err:
            self.stats.decrypt_fallbacks += 1
            logger.warning("Message decryption failed, treating as plaintext: %s", err)
            return ciphertext

    @staticmethod
    def _decrypt(ciphertext: str, key: str) -> str:
        raw = base64.b64decode(ciphertext, validate=True)
        header = len(SALTED_MAGIC) + SALT_BYTES
        if not raw.startswith(SALTED_MAGIC):
            raise ValueError("missing salted envelope header")
        body = raw[header:]
        if not body or len(body) % (BLOCK_BITS // 8):
            raise ValueError("ciphertext is not a whole number of blocks")

        aes_key, iv = _evp_bytes_to_key(key.encode(), raw[len(SALTED_MAGIC):header])
        decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")

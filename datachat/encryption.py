"""
Per-owner encryption of chat message text before it is stored.

Envelope layout: base64( iv[12] || AES-256-GCM ciphertext+tag ), the same
layout WebCrypto produces, so envelopes written by the browser client decrypt
here and vice versa.

The key is derived with PBKDF2-HMAC-SHA256 from ``owner_id + salt`` where the
salt is the first 8 characters of the owner id. That salt is predictable and
gives every message of an owner the same key; it is kept as-is so existing
envelopes stay readable. A per-owner random salt stored next to the owner
record would be the stronger scheme.

Both directions fail open: encryption falls back to the plaintext and
decryption returns its input untouched, so legacy plaintext rows and damaged
envelopes still render.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import os
from typing import Sequence

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)


class ChatEncryption:
    """Encrypts and decrypts chat message text keyed per owner."""

    KEY_LENGTH = 32
    IV_LENGTH = 12
    SALT_LENGTH = 8
    ITERATIONS = 100_000

    @classmethod
    def salt_for(cls, owner_id: str) -> str:
        return owner_id[: cls.SALT_LENGTH]

    @classmethod
    def derive_key(cls, owner_id: str) -> bytes:
        salt = cls.salt_for(owner_id)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=cls.KEY_LENGTH,
            salt=salt.encode("utf-8"),
            iterations=cls.ITERATIONS,
        )
        return kdf.derive((owner_id + salt).encode("utf-8"))

    @classmethod
    def _seal(cls, key: bytes, message: str) -> str:
        iv = os.urandom(cls.IV_LENGTH)
        ciphertext = AESGCM(key).encrypt(iv, message.encode("utf-8"), None)
        return base64.b64encode(iv + ciphertext).decode("ascii")

    @classmethod
    def _open(cls, key: bytes, envelope: str) -> str:
        combined = base64.b64decode(envelope.encode("ascii"), validate=True)
        iv, ciphertext = combined[: cls.IV_LENGTH], combined[cls.IV_LENGTH :]
        return AESGCM(key).decrypt(iv, ciphertext, None).decode("utf-8")

    @classmethod
    async def encrypt_message(cls, message: str, owner_id: str) -> str:
        """Encrypt before storing. Returns the plaintext if anything goes wrong."""
        try:
            key = await asyncio.to_thread(cls.derive_key, owner_id)
            return cls._seal(key, message)
        except Exception as e:
            logger.error("Failed to encrypt chat message: %s", e)
            return message

    @classmethod
    async def decrypt_message(cls, encrypted_message: str, owner_id: str) -> str:
        """Decrypt a stored envelope. Returns the input as-is if it cannot be decrypted."""
        try:
            key = await asyncio.to_thread(cls.derive_key, owner_id)
        except Exception as e:
            logger.error("Failed to derive chat key: %s", e)
            return encrypted_message
        return cls._open_or_passthrough(key, encrypted_message)

    @classmethod
    def _open_or_passthrough(cls, key: bytes, encrypted_message: str) -> str:
        try:
            return cls._open(key, encrypted_message)
        except Exception as e:
            # InvalidTag carries no message; the type name is the useful part
            logger.error("Failed to decrypt chat message: %s: %s", type(e).__name__, e)
            return encrypted_message

    @classmethod
    async def decrypt_messages(cls, encrypted_messages: Sequence[str], owner_id: str) -> list[str]:
        """Decrypt a loaded history; the key is derived once, envelopes are opened concurrently."""
        if not encrypted_messages:
            return []
        try:
            key = await asyncio.to_thread(cls.derive_key, owner_id)
        except Exception as e:
            logger.error("Failed to derive chat key: %s", e)
            return list(encrypted_messages)

        async def _one(envelope: str) -> str:
            return await asyncio.to_thread(cls._open_or_passthrough, key, envelope)

        return list(await asyncio.gather(*(_one(envelope) for envelope in encrypted_messages)))

"""
AES-256-GCM adapter for PayloadCodec.

Blob layout: base64( 12-byte nonce || ciphertext || 16-byte tag ).
The key is SHA-256 of the configured secret; older secrets can be passed
as previous_secrets so rows written before a rotation stay readable.
"""

import base64
import binascii
import hashlib
import json
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from newbook_cache.domain.codec import PayloadCodec

NONCE_SIZE = 12
TAG_SIZE = 16

log = logging.getLogger(__name__)


def derive_key(secret: str) -> bytes:
    return hashlib.sha256(secret.encode("utf-8")).digest()


class AesGcmCodec(PayloadCodec):

    def __init__(self, secret: str, previous_secrets: tuple[str, ...] | list[str] = ()):
        if not secret:
            raise ValueError("encryption secret must not be empty")
        self._current = AESGCM(derive_key(secret))
        self._previous = [AESGCM(derive_key(s)) for s in previous_secrets if s]

    def encrypt(self, payload: dict) -> str | None:
        try:
            plaintext = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            log.error("Encryption failed: payload not serializable (%s)", exc)
            return None
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._current.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> dict | None:
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError):
            log.error("Decryption failed: invalid data")
            return None

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            log.error("Decryption failed: blob truncated")
            return None

        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        for cipher in [self._current, *self._previous]:
            try:
                plaintext = cipher.decrypt(nonce, ciphertext, None)
            except InvalidTag:
                continue
            try:
                payload = json.loads(plaintext.decode("utf-8"))
            except ValueError:
                log.error("Decryption failed: payload is not JSON")
                return None
            return payload if isinstance(payload, dict) else None

        log.error("Decryption failed: authentication failed")
        return None

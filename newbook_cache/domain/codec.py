"""
PayloadCodec port: turns a booking payload into an opaque blob and back.
"""

from abc import ABC, abstractmethod


class PayloadCodec(ABC):
    """
    Port: symmetric encryption of structured records at rest.

    Implementations never raise into callers.  A blob that cannot be
    decrypted (wrong key, truncated, tampered) comes back as None, and
    callers treat that exactly like a missing record.
    """

    @abstractmethod
    def encrypt(self, payload: dict) -> str | None:
        """Return an opaque text blob, or None if encryption failed."""
        ...

    @abstractmethod
    def decrypt(self, blob: str) -> dict | None:
        """Return the original payload, or None if the blob is unreadable."""
        ...

"""Sealed-box encryption of secret values for the GitHub Actions API.

GitHub publishes one X25519 public key per organization and expects values
encrypted with a libsodium sealed box (``crypto_box_seal``), base64 encoded.
The sender stays anonymous and needs no key of its own.
"""

import base64
import binascii
import logging
import threading
from typing import Optional

from nacl import exceptions as nacl_exceptions
from nacl import public

from .client import GitHubClient
from .errors import APIError, AuthenticationError, EncryptionError, KeyUnavailableError
from .models import PublicKey

logger = logging.getLogger(__name__)

# Keys older than this are fetched again before sealing another value
DEFAULT_KEY_MAX_AGE = 300.0


def fetch_key(client: GitHubClient, org: str) -> PublicKey:
    """Fetch and validate the organization's current Actions public key"""
    try:
        data = client.get_org_public_key(org)
    except AuthenticationError:
        raise
    except APIError as e:
        raise KeyUnavailableError(f"Failed to fetch public key for {org}: {e}") from e

    key_id = data.get('key_id') if isinstance(data, dict) else None
    encoded = data.get('key') if isinstance(data, dict) else None
    if not key_id or not encoded:
        raise KeyUnavailableError(f"No public key returned for {org}")

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyUnavailableError(f"Public key for {org} is not valid base64: {e}") from e
    if len(raw) != public.PublicKey.SIZE:
        raise KeyUnavailableError(
            f"Public key for {org} is {len(raw)} bytes, expected {public.PublicKey.SIZE}")

    logger.info(f"Retrieved public key {key_id} for {org}")
    return PublicKey(key_id=key_id, raw=raw)


def seal(plaintext: str, key: PublicKey) -> str:
    """Encrypt a secret value with the public key, returning base64 ciphertext"""
    try:
        box = public.SealedBox(public.PublicKey(key.raw))
        encrypted = box.encrypt(plaintext.encode('utf-8'))
    except (nacl_exceptions.CryptoError, TypeError, ValueError, UnicodeError) as e:
        raise EncryptionError(f"Failed to encrypt value with key {key.key_id}: {e}") from e
    return base64.b64encode(encrypted).decode('utf-8')


class PublicKeyProvider:
    """Holds the destination key for a run, refetching it once it gets old"""

    def __init__(self, client: GitHubClient, org: str, max_age: float = DEFAULT_KEY_MAX_AGE):
        self.client = client
        self.org = org
        self.max_age = max_age
        self.fetches = 0
        self._key: Optional[PublicKey] = None
        self._lock = threading.Lock()

    def current(self) -> PublicKey:
        with self._lock:
            if self._key is None or self._key.age() > self.max_age:
                if self._key is not None:
                    logger.info(f"Public key {self._key.key_id} is older than {self.max_age:.0f}s, refreshing")
                self._key = fetch_key(self.client, self.org)
                self.fetches += 1
            return self._key

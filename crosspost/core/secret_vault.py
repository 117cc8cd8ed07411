from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from crosspost.core.errors import ConfigurationError, FormatError, IntegrityError
from crosspost.core.settings import Settings

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000
_HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH


class SecretVault:
    """Envelope encryption for secrets at rest.

    Every call derives a fresh AES-256-GCM key from the master secret and a new
    random salt, so two encryptions of the same plaintext never match. Blobs are
    base64(salt || iv || tag || ciphertext).
    """

    def __init__(self, master_secret: str | None):
        if not master_secret:
            raise ConfigurationError("Secret vault requires a non-empty master secret")
        self._master = master_secret.encode("utf-8")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecretVault":
        return cls(settings.require_master_secret())

    def encrypt(self, plaintext: str) -> str:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag; the blob layout keeps it ahead of the ciphertext.
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        try:
            raw = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, AttributeError) as exc:
            raise FormatError("Encrypted blob is not valid base64") from exc
        if len(raw) < _HEADER_LENGTH:
            raise FormatError("Encrypted blob is too short")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
        tag = raw[SALT_LENGTH + IV_LENGTH : _HEADER_LENGTH]
        ciphertext = raw[_HEADER_LENGTH:]
        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise IntegrityError("Encrypted blob failed authentication") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError("Decrypted secret is not valid UTF-8") from exc

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=PBKDF2_ITERATIONS,
        )
        return kdf.derive(self._master)

"""
Credential Vault

AES-256-GCM encryption for processor secrets stored at rest, plus key
format validation and test/live mode checks.

Ciphertext layout: base64(IV || ciphertext || auth tag) with a fresh
16-byte IV per value. The 256-bit key is SHA-256 of a configured master
secret and is never stored.
"""
import base64
import binascii
import hashlib
import logging
import os
import re
from typing import Optional, List, Literal

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import settings
from ..exceptions import CredentialValidationError

logger = logging.getLogger(__name__)

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16

SECRET_KEY_PATTERN = re.compile(r"^sk_(test|live)_[a-zA-Z0-9]{24,}$")
PUBLISHABLE_KEY_PATTERN = re.compile(r"^pk_(test|live)_[a-zA-Z0-9]{24,}$")
WEBHOOK_SECRET_PATTERN = re.compile(r"^whsec_[a-zA-Z0-9]{24,}$")

KeyMode = Literal["test", "live", "unknown"]


class CredentialVault:
    """
    Encrypts and decrypts processor secrets.

    decrypt() never raises: an empty string means "unavailable" and callers
    must not treat it as a usable secret.
    """

    def __init__(self, master_secret: str):
        if not master_secret:
            raise ValueError("Credential vault requires ENCRYPTION_KEY or APP_SECRET to be set")
        self._aesgcm = AESGCM(hashlib.sha256(master_secret.encode("utf-8")).digest())

    @classmethod
    def from_settings(cls) -> "CredentialVault":
        """Build the vault from ENCRYPTION_KEY, falling back to APP_SECRET."""
        return cls(settings.encryption_key or settings.app_secret)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret for storage.

        Args:
            plaintext: Secret to protect; empty input yields empty output

        Returns:
            base64(IV || ciphertext || tag)
        """
        if not plaintext:
            return ""
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return base64.b64encode(iv + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Reverse encrypt().

        Returns:
            The plaintext, or "" for empty, corrupted, truncated or foreign input
        """
        if not ciphertext:
            return ""
        try:
            raw = base64.b64decode(ciphertext, validate=True)
            if len(raw) < IV_LENGTH + AUTH_TAG_LENGTH + 1:
                return ""
            iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
            return self._aesgcm.decrypt(iv, sealed, None).decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError) as e:
            logger.warning(f"Credential decryption failed: {type(e).__name__}")
            return ""


def is_encrypted(value: Optional[str]) -> bool:
    """Heuristic: valid base64 that is long enough to hold IV, tag and one byte."""
    if not value:
        return False
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return len(raw) >= IV_LENGTH + AUTH_TAG_LENGTH + 1


def mask_key(key: Optional[str]) -> str:
    """Display form of a key: first 7 and last 4 characters."""
    if not key or len(key) < 15:
        return "••••••••"
    return f"{key[:7]}...{key[-4:]}"


# ============================================================================
# Key format and mode
# ============================================================================

def is_valid_secret_key_format(key: str) -> bool:
    return bool(SECRET_KEY_PATTERN.match(key or ""))


def is_valid_publishable_key_format(key: str) -> bool:
    return bool(PUBLISHABLE_KEY_PATTERN.match(key or ""))


def is_valid_webhook_secret_format(secret: str) -> bool:
    return bool(WEBHOOK_SECRET_PATTERN.match(secret or ""))


def get_key_mode(key: str) -> KeyMode:
    """Mode encoded in a secret or publishable key prefix."""
    if not key:
        return "unknown"
    if key.startswith(("sk_test_", "pk_test_")):
        return "test"
    if key.startswith(("sk_live_", "pk_live_")):
        return "live"
    return "unknown"


def is_test_mode_key(key: str) -> bool:
    return get_key_mode(key) == "test"


def are_keys_mismatched(secret_key: str, publishable_key: str) -> bool:
    """True when one key is test mode and the other live mode."""
    secret_mode = get_key_mode(secret_key)
    publishable_mode = get_key_mode(publishable_key)
    if "unknown" in (secret_mode, publishable_mode):
        return False
    return secret_mode != publishable_mode


def validate_stripe_credentials(
    secret_key: Optional[str],
    publishable_key: Optional[str],
    webhook_secret: Optional[str] = None
) -> None:
    """
    Validate a set of Stripe credentials before they are saved.

    Every problem is collected so the integrator sees all of them at once.

    Raises:
        CredentialValidationError: one or more checks failed
    """
    errors: List[str] = []

    if secret_key and not is_valid_secret_key_format(secret_key):
        errors.append("Invalid Stripe secret key format. Must start with sk_test_ or sk_live_")

    if publishable_key and not is_valid_publishable_key_format(publishable_key):
        errors.append("Invalid Stripe publishable key format. Must start with pk_test_ or pk_live_")

    if webhook_secret and not is_valid_webhook_secret_format(webhook_secret):
        errors.append("Invalid webhook secret format. Must start with whsec_")

    if secret_key and publishable_key and are_keys_mismatched(secret_key, publishable_key):
        errors.append(
            "Secret key and publishable key mode mismatch. Both must be test or both must be live."
        )

    if errors:
        raise CredentialValidationError(errors)

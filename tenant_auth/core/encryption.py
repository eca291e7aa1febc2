"""
Symmetric encryption for secrets stored at rest (TOTP secrets, backup codes).

Uses Fernet. ENCRYPTION_KEY must be a urlsafe-base64 32-byte key; when it is
not configured a key is derived from SECRET_KEY with PBKDF2.
"""

import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from tenant_auth.config import settings
from tenant_auth.logging import get_logger

logger = get_logger(__name__)

_KDF_SALT = b"tenant-auth-at-rest"


class EncryptionService:
    """Encrypt and decrypt short strings."""

    def __init__(self, key: str | None = None):
        key = key or settings.ENCRYPTION_KEY
        if key:
            self.fernet = Fernet(key.encode("utf-8"))
        else:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=_KDF_SALT,
                iterations=100_000,
            )
            derived = base64.urlsafe_b64encode(kdf.derive(settings.SECRET_KEY.encode("utf-8")))
            self.fernet = Fernet(derived)

    def encrypt(self, plaintext: str) -> str:
        return self.fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str | None:
        """
        Decrypt a value produced by encrypt().

        Returns:
            Plaintext, or None when the value was written with another key
        """
        try:
            return self.fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.warning("decrypt_failed")
            return None


_service: EncryptionService | None = None


def get_encryption_service() -> EncryptionService:
    global _service
    if _service is None:
        _service = EncryptionService()
    return _service

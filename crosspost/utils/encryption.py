"""AES-256-GCM encryption for OAuth tokens."""
import base64
import os
from functools import lru_cache

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator


class TokenEncryptor:
    def __init__(self, key_hex: str):
        self.aesgcm = AESGCM(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(12)
        ciphertext = self.aesgcm.encrypt(nonce, plaintext.encode(), None)
        return base64.b64encode(nonce + ciphertext).decode()

    def decrypt(self, token: str) -> str:
        data = base64.b64decode(token)
        nonce, ciphertext = data[:12], data[12:]
        return self.aesgcm.decrypt(nonce, ciphertext, None).decode()


@lru_cache
def get_token_encryptor() -> TokenEncryptor:
    from crosspost.config import settings

    if not settings.ENCRYPTION_KEY:
        raise RuntimeError("ENCRYPTION_KEY is not configured; OAuth tokens cannot be stored")
    return TokenEncryptor(settings.ENCRYPTION_KEY)


class EncryptedText(TypeDecorator):
    """Text column that is encrypted at rest and plaintext in Python."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return get_token_encryptor().encrypt(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return get_token_encryptor().decrypt(value)

"""
One-way hashing for one-time codes and refresh-token secrets.

Codes are short and guessable offline, so they are stored as bcrypt hashes.
Refresh secrets carry 256 bits of randomness and must be looked up by hash,
so they use a deterministic SHA-256 digest.
"""

import base64
import hashlib
import hmac

from passlib.context import CryptContext


class SecretHasher:
    """
    Hash and verify one-time codes and refresh secrets.

    Verification is always constant-time; plaintext equality is never used.
    """

    def __init__(self, bcrypt_rounds: int = 12):
        self.code_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=bcrypt_rounds,
        )

    def hash_code(self, code: str) -> str:
        return self.code_context.hash(code)

    def verify_code(self, code: str, code_hash: str) -> bool:
        try:
            return self.code_context.verify(code, code_hash)
        except ValueError:
            # Malformed stored hash counts as a mismatch
            return False

    @staticmethod
    def hash_refresh_secret(secret: str) -> str:
        """URL-safe base64 SHA-256 digest, unpadded."""
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def verify_refresh_secret(self, secret: str, token_hash: str) -> bool:
        return hmac.compare_digest(self.hash_refresh_secret(secret), token_hash)

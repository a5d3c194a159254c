"""Password hashing capability.

The user service only depends on the ``PasswordHasher`` protocol; how
digests are produced is supplied at wiring time.
"""
import hashlib
import hmac
import secrets
from typing import Protocol

PBKDF2_ALGORITHM = "sha256"
PBKDF2_ITERATIONS = 260_000
SALT_BYTES = 16


class PasswordHasher(Protocol):
    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, digest: str) -> bool: ...


class Pbkdf2PasswordHasher:
    """PBKDF2-HMAC hasher producing ``pbkdf2_sha256$<iterations>$<salt>$<hash>``."""

    def __init__(self, iterations: int = PBKDF2_ITERATIONS) -> None:
        self.iterations = iterations

    def _derive(self, plaintext: str, salt: str, iterations: int) -> str:
        return hashlib.pbkdf2_hmac(
            PBKDF2_ALGORITHM, plaintext.encode(), salt.encode(), iterations
        ).hex()

    def hash(self, plaintext: str) -> str:
        salt = secrets.token_hex(SALT_BYTES)
        derived = self._derive(plaintext, salt, self.iterations)
        return f"pbkdf2_{PBKDF2_ALGORITHM}${self.iterations}${salt}${derived}"

    def verify(self, plaintext: str, digest: str) -> bool:
        try:
            scheme, iterations, salt, expected = digest.split("$")
        except ValueError:
            return False
        if scheme != f"pbkdf2_{PBKDF2_ALGORITHM}" or not iterations.isdigit():
            return False
        derived = self._derive(plaintext, salt, int(iterations))
        return hmac.compare_digest(derived, expected)

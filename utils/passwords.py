"""
utils/passwords.py
------------------
Default password hasher and verifier handed to UserService.
Hashes are Argon2id, encoded in the standard ``$argon2id$...`` form.
"""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from argon2.low_level import Type

_hasher = PasswordHasher(time_cost=2, memory_cost=102400, parallelism=8, hash_len=32, type=Type.ID)


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, encoded: str) -> bool:
    """Returns True if ``password`` matches ``encoded``; False for a mismatch or a foreign hash."""
    if not password or not encoded:
        return False
    try:
        return _hasher.verify(encoded, password)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(encoded: str) -> bool:
    """True if ``encoded`` was made with weaker parameters than the current ones."""
    return _hasher.check_needs_rehash(encoded)

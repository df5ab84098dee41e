"""
Password hashing with argon2id.
"""
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError


_hasher = PasswordHasher(type=Type.ID)


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(hashed_password: str, password: str) -> bool:
    """Return True when ``password`` matches; malformed hashes never match."""
    try:
        return _hasher.verify(hashed_password, password)
    except (VerificationError, InvalidHash):
        return False

"""
Password Hashing & Policy
=========================
Argon2id hashing for credentials set during account bootstrap, and the
strength policy they must meet.
"""

from .hasher import get_cached_hasher
from .async_ops import hash_password, verify_password, needs_rehash
from .policy import PasswordPolicy

__all__ = [
    # Hasher
    "get_cached_hasher",
    # Async Operations
    "hash_password",
    "verify_password",
    "needs_rehash",
    # Policy
    "PasswordPolicy",
]

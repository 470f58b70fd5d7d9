"""
Password Hasher
===============
Argon2id password hasher configuration and initialization.
"""

from functools import lru_cache

from argon2 import PasswordHasher, Type


def _get_hasher() -> PasswordHasher:
    """Get the Argon2id password hasher with production-ready settings."""
    # ~300ms hashing time on a typical server
    return PasswordHasher(
        time_cost=3,        # Number of iterations
        memory_cost=65536,  # 64MB memory (64 * 1024 KB)
        parallelism=4,      # 4 parallel threads
        hash_len=32,        # 32-byte hash output
        salt_len=16,        # 16-byte salt
        type=Type.ID,       # Argon2id variant
    )


@lru_cache(maxsize=1)
def get_cached_hasher() -> PasswordHasher:
    """Get cached hasher instance."""
    return _get_hasher()

"""
Async Password Hashing
======================
Event-loop-safe password hashing and verification using Argon2id.
"""

import asyncio

from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from .hasher import get_cached_hasher


async def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: Plain text password to hash

    Returns:
        Argon2id hash string (includes algorithm, parameters, salt, and hash)
    """
    if not password:
        raise ValueError("Password cannot be empty")

    hasher = get_cached_hasher()
    loop = asyncio.get_running_loop()

    # Run in executor to avoid blocking the event loop
    return await loop.run_in_executor(None, hasher.hash, password)


async def verify_password(password: str, hash: str) -> bool:
    """
    Verify a password against an Argon2id hash.

    Returns:
        True if password matches, False otherwise
    """
    if not password or not hash or not hash.startswith("$argon2"):
        return False

    hasher = get_cached_hasher()
    loop = asyncio.get_running_loop()

    def _verify() -> bool:
        try:
            return hasher.verify(hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    return await loop.run_in_executor(None, _verify)


def needs_rehash(hash: str) -> bool:
    """True if the hash was produced with outdated Argon2 parameters."""
    if not hash or not hash.startswith("$argon2"):
        return True
    try:
        return get_cached_hasher().check_needs_rehash(hash)
    except InvalidHashError:
        return True

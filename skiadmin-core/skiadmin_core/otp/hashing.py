"""
OTP Hashing Utilities
=====================
Secure generation, hashing and comparison of one-time codes.
"""

import secrets
import hashlib
import hmac


def generate_otp(length: int = 6) -> str:
    """
    Generate a uniformly random numeric OTP.

    Every value in ``[0, 10**length)`` is equally likely; leading zeros are kept.

    Args:
        length: Number of digits

    Returns:
        OTP string of exactly ``length`` digits
    """
    if length < 1:
        raise ValueError("OTP length must be positive")
    return str(secrets.randbelow(10 ** length)).zfill(length)


def hash_otp(otp: str, salt: str) -> str:
    """
    Hash an OTP with salt using SHA-256.

    Args:
        otp: Plain OTP
        salt: Random salt

    Returns:
        Hex digest
    """
    return hashlib.sha256(f"{salt}:{otp}".encode()).hexdigest()


def verify_otp_hash(otp: str, salt: str, stored_hash: str) -> bool:
    """
    Verify an OTP against its hash.

    Uses constant-time comparison to prevent timing attacks.
    """
    computed_hash = hash_otp(otp, salt)
    return hmac.compare_digest(computed_hash, stored_hash)


def generate_salt() -> str:
    """Generate a random salt for OTP hashing."""
    return secrets.token_hex(16)


def normalize_contact(contact: str) -> str:
    """Canonical form of an e-mail address or phone number for comparison."""
    contact = contact.strip()
    if "@" in contact:
        return contact.lower()
    return "".join(contact.split())

"""
Setup Tokens
============
Signed, expiring, single-purpose tokens for invitations and password setup.
"""

from .models import SetupTokenType, SetupTokenPayload, TokenError, TokenVerificationResult
from .codec import SetupTokenCodec, generate_jti, SIGNING_ALGORITHM

__all__ = [
    # Models
    "SetupTokenType",
    "SetupTokenPayload",
    "TokenError",
    "TokenVerificationResult",
    # Codec
    "SetupTokenCodec",
    "generate_jti",
    "SIGNING_ALGORITHM",
]

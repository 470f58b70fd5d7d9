"""
Credential Bootstrap
====================
Invitation tokens exchanged once for a first password.
"""

from .models import BootstrapState, Role, Profile, SetupPrincipal
from .profiles import ProfileStore, InMemoryProfileStore, SQLProfileStore
from .flow import SetupFlow

__all__ = [
    # Models
    "BootstrapState",
    "Role",
    "Profile",
    "SetupPrincipal",
    # Profile stores
    "ProfileStore",
    "InMemoryProfileStore",
    "SQLProfileStore",
    # Flow
    "SetupFlow",
]

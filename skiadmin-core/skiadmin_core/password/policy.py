"""
Password Policy
===============
Minimum strength rules for credentials set through the setup flow.
"""

from dataclasses import dataclass
from typing import List

from skiadmin_core.errors import WeakCredential


@dataclass(frozen=True)
class PasswordPolicy:
    """Strength requirements checked before any state is touched."""
    min_length: int = 12
    max_length: int = 128
    require_letter: bool = False
    require_digit: bool = False

    def problems(self, password: str) -> List[str]:
        found = []
        if len(password) < self.min_length:
            found.append(f"Password must be at least {self.min_length} characters")
        if len(password) > self.max_length:
            found.append(f"Password must be at most {self.max_length} characters")
        if not password.strip():
            found.append("Password cannot be blank")
        if self.require_letter and not any(c.isalpha() for c in password):
            found.append("Password must contain a letter")
        if self.require_digit and not any(c.isdigit() for c in password):
            found.append("Password must contain a digit")
        return found

    def validate(self, password: str) -> None:
        """
        Raises:
            WeakCredential: listing the first failed rule
        """
        found = self.problems(password or "")
        if found:
            raise WeakCredential(found[0])

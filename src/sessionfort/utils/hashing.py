"""Secret hashing using argon2, with a separate cost class per kind of secret."""

import enum
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from sessionfort.config import HashCost


class CostClass(enum.Enum):
    PASSWORD = "password"
    OTP = "otp"
    REFRESH = "refresh"


class SecretHasher:
    """Salted argon2id hashing for passwords, OTP codes and refresh tokens.

    Each cost class gets its own ``PasswordHasher``. Verification works for
    any digest regardless of class because argon2 encodes its parameters in
    the digest itself.

    Args:
        costs: Mapping of CostClass to the HashCost used when hashing.
    """

    def __init__(self, costs: dict[CostClass, HashCost]) -> None:
        missing = set(CostClass) - set(costs)
        if missing:
            raise ValueError(f"Missing hash cost for: {', '.join(c.value for c in missing)}")
        self._hashers = {
            cost_class: PasswordHasher(
                time_cost=cost.time_cost,
                memory_cost=cost.memory_cost,
                parallelism=cost.parallelism,
            )
            for cost_class, cost in costs.items()
        }
        self._absent_digest: str | None = None

    def hash(self, secret: str, cost_class: CostClass) -> str:
        """Hash a secret with the parameters of its cost class."""
        return self._hashers[cost_class].hash(secret)

    def verify(self, secret: str, digest: str) -> bool:
        """Verify a secret against a stored digest.

        Uses constant-time comparison internally (argon2-cffi handles this).
        A malformed digest never matches.
        """
        try:
            return self._hashers[CostClass.PASSWORD].verify(digest, secret)
        except (VerificationError, InvalidHashError):
            return False

    @property
    def absent_digest(self) -> str:
        """A password-class digest that no caller knows, for lookups that found no user."""
        if self._absent_digest is None:
            self._absent_digest = self.hash(secrets.token_urlsafe(32), CostClass.PASSWORD)
        return self._absent_digest

"""
Lifespan validation and expiration for transfer tokens
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel

from .constants import TRANSFER_TOKEN_LIFESPANS
from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Expiration(BaseModel):
    """Lifespan and the expiration timestamp derived from it"""
    lifespan: Optional[int | float] = None
    expires_at: Optional[datetime] = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class LifespanPolicy:
    """
    Validates token lifespans (milliseconds) and derives expirations.
    """

    def __init__(
        self,
        allowed_lifespans: Optional[Iterable[Optional[int]]] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        if allowed_lifespans is None:
            allowed_lifespans = TRANSFER_TOKEN_LIFESPANS.values()
        self._allowed = [value for value in allowed_lifespans if value is not None]
        self._clock = clock

    @property
    def allowed_lifespans(self) -> list[int]:
        return list(self._allowed)

    def resolve_expiration(self, lifespan: Any) -> Expiration:
        """
        Compute the expiration fields for a new token.

        Args:
            lifespan: Duration in milliseconds, or None for no expiration

        Returns:
            Expiration with expires_at = now + lifespan

        Raises:
            ValidationError: If lifespan is neither None nor a finite number > 0
        """
        if lifespan is None:
            return Expiration()

        if not _is_number(lifespan) or not math.isfinite(lifespan) or lifespan <= 0:
            raise ValidationError("lifespan must be a positive number or null")

        return Expiration(
            lifespan=lifespan,
            expires_at=self._clock() + timedelta(milliseconds=lifespan)
        )

    def assert_valid_lifespan(self, lifespan: Any) -> None:
        """
        Check that a lifespan is one of the allowed values.

        Raises:
            ValidationError: If lifespan is set and not allowed
        """
        if lifespan is None:
            return

        if not _is_number(lifespan) or lifespan not in self._allowed:
            allowed = ", ".join(str(value) for value in self._allowed)
            raise ValidationError(
                f"lifespan must be one of the following values: {allowed}"
            )

"""Token health derived from an access token's expiry."""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

from ..core.config import settings


class TokenHealth(str, Enum):
    """Four-state token health. Derived on read, never stored."""
    HEALTHY = "healthy"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def token_health(
    expires_at: Optional[datetime],
    now: Optional[datetime] = None,
    horizon: Optional[timedelta] = None,
) -> TokenHealth:
    """
    Classify a token by its expiry.

    Args:
        expires_at: Token expiry, None when the platform did not report one
        now: Reference time (defaults to current UTC time)
        horizon: Window before expiry that counts as expiring soon
            (defaults to ``token_health_horizon_days``)

    Returns:
        TokenHealth
    """
    if expires_at is None:
        return TokenHealth.UNKNOWN
    now = _as_utc(now or datetime.now(timezone.utc))
    expires_at = _as_utc(expires_at)
    if expires_at < now:
        return TokenHealth.EXPIRED
    horizon = horizon if horizon is not None else timedelta(days=settings.token_health_horizon_days)
    if expires_at < now + horizon:
        return TokenHealth.EXPIRING_SOON
    return TokenHealth.HEALTHY


def summarize_health(states: Iterable[TokenHealth]) -> dict:
    """
    Count channels per health state.

    ``healthy`` is True when no token has expired.
    """
    counts = {state.value: 0 for state in TokenHealth}
    for state in states:
        counts[TokenHealth(state).value] += 1
    return {
        "counts": counts,
        "total": sum(counts.values()),
        "healthy": counts[TokenHealth.EXPIRED.value] == 0,
    }

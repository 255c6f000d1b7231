"""Per-client request throttling (slowapi).

Authenticated endpoints share ``RATE_LIMIT_DEFAULT``. The dashboards that are
reachable without a token (team overview, time-off calendar) opt into the
tighter ``PUBLIC_DASHBOARD_LIMIT`` with ``@limiter.limit``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from capacity_tracker.config import settings

PUBLIC_DASHBOARD_LIMIT = settings.RATE_LIMIT_PUBLIC

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)

"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in any route module
that needs a per-route override (@limiter.limit() / @limiter.exempt).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

default_limits applies RATE_LIMIT (fixed window, "10 per 6 seconds" unless
configured otherwise) to every route through SlowAPIMiddleware, keyed by the
client address. RATE_LIMIT_ENABLED=false turns the whole limiter off (the test
suite does this).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_settings.rate_limit],
    storage_uri="memory://",
    strategy="fixed-window",
    enabled=_settings.rate_limit_enabled,
)

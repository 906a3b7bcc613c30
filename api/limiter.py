"""
api/limiter.py -- Shared slowapi rate limiter instance and per-endpoint limits.

Import this in both api/main.py (to mount as middleware) and the route
modules (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limits are keyed by client address:
  login     LOGIN_RATE_LIMIT     (default 5 per 5 minutes)
  register  REGISTER_RATE_LIMIT  (default 2 per minute)
  refresh   REFRESH_RATE_LIMIT   (default 10 per 15 minutes)
  all other routes fall under DEFAULT_RATE_LIMIT (default 100 per 15 minutes),
  applied by SlowAPIMiddleware.

Decorator order matters: @router.<method>() must sit ABOVE @limiter.limit() so
FastAPI registers the rate-limited wrapper. SlowAPIMiddleware skips routes that
carry their own limit, leaving them to the decorator.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

LOGIN_LIMIT_MESSAGE = "Too many login attempts, please try again later."
REGISTER_LIMIT_MESSAGE = "Too many register attempts, please try again later."
REFRESH_LIMIT_MESSAGE = "Too many refresh attempts, please try again later."
DEFAULT_LIMIT_MESSAGE = "Too many requests, please try again later."

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_settings.default_rate_limit],
    storage_uri="memory://",
    enabled=_settings.rate_limit_enabled,
)

login_limit = limiter.limit(_settings.login_rate_limit, error_message=LOGIN_LIMIT_MESSAGE)
register_limit = limiter.limit(_settings.register_rate_limit, error_message=REGISTER_LIMIT_MESSAGE)
refresh_limit = limiter.limit(_settings.refresh_rate_limit, error_message=REFRESH_LIMIT_MESSAGE)

"""
Request rate limiting.

The limiter lives here rather than in ``meetfood.main`` so route modules can
decorate endpoints without importing the app.
"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from meetfood.core.config import settings

# Keyed by client address; upload routes add tighter per-route limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_hour}/hour"],
)

rate_limit_handler = _rate_limit_exceeded_handler
rate_limit_exception = RateLimitExceeded

"""
Rate limiting.

One process-wide slowapi ``Limiter``, fixed-window, keyed by the caller's
user id (``X-User-Id``) and falling back to the client address.  With the
default ``memory://`` storage the counters live in this process only and
vanish on restart; multi-instance deployments point
``RATE_LIMIT_STORAGE_URI`` at a shared Redis.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from transfer.config import settings

USER_ID_HEADER = "X-User-Id"


def rate_limit_key(request: Request) -> str:
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
)

# Named limit categories, resolved from settings at decoration time.
STANDARD = settings.rate_limit_standard
PAYMENT = settings.rate_limit_payment
SENSITIVE = settings.rate_limit_sensitive
DRIVER_LOCATION = settings.rate_limit_driver_location

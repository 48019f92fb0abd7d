"""Rate limiting configuration for API endpoints.

Uses slowapi, keyed by client address.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address


# Shared across the application; ``create_app`` switches it on or off
limiter = Limiter(key_func=get_remote_address)


class RateLimits:
    """Rate limit constants for different endpoint types."""

    READ = "120/minute"

    # Transitions, cost updates, notes
    WRITE = "60/minute"

    # Geocodes and emails on every call
    DISPATCH = "10/minute"

    # GPS pings from technician devices
    LOCATION = "240/minute"

    HEALTH = "300/minute"

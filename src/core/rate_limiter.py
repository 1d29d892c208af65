"""Rate limiting configuration for API endpoints."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import get_settings

SCOPED_SEGMENTS = ("tenants", "assistants")


def get_rate_limit_key(request: Request) -> str:
    """Get composite key: tenant or assistant id + IP for analytics endpoints, IP otherwise."""
    ip = get_remote_address(request)

    parts = [part for part in request.url.path.split("/") if part]
    for index, part in enumerate(parts[:-1]):
        if part in SCOPED_SEGMENTS:
            return f"{part}:{parts[index + 1]}:{ip}"

    return ip


def analytics_rate_limit() -> str:
    return f"{get_settings().rate_limit_per_minute}/minute"


limiter = Limiter(key_func=get_rate_limit_key)

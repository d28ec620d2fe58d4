"""
Request rate limiting shared by the app and its routers.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from parcel_editor.config import settings


limiter = Limiter(key_func=get_remote_address)

# Limit string applied to the stateless geometry endpoints
GEOMETRY_RATE_LIMIT = f"{settings.rate_limit_requests}/minute"

"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and web/routes.py (per-route
limits on POST /login and POST /register with @limiter.limit()).

A single shared instance keeps one in-memory counter store. Separate instances
per module would each count on their own and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

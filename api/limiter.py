"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount SlowAPIMiddleware) and by
api/routes/v1/auth.py (to apply the login limit with @limiter.limit()).
A single shared instance means every route counts against the same store.
Point RATE_LIMIT_STORAGE_URI at Redis when running more than one worker.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)

"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

The signup/login limit comes from the Settings the app was started with:
the lifespan calls configure(app.state.settings) before serving requests.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import Settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

_auth_limit: str = Settings.model_fields["auth_rate_limit"].default


def configure(settings: Settings) -> None:
    """Bind the signup/login limit to the app's Settings."""
    global _auth_limit
    _auth_limit = settings.auth_rate_limit


def auth_rate_limit() -> str:
    """Limit string for signup/login, resolved per request."""
    return _auth_limit

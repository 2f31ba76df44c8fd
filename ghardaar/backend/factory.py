"""Factory for the backend singleton."""

from ghardaar.backend.base import Backend
from ghardaar.config.settings import get_settings

_backend: Backend | None = None


def get_backend() -> Backend | None:
    """Get the backend singleton. Returns None if no service-role key is configured."""
    global _backend
    if _backend is not None:
        return _backend

    settings = get_settings()
    if not settings.service_role_configured:
        return None

    # Lazy import to keep the supabase client out of pure-logic imports
    from ghardaar.backend.supabase_backend import SupabaseBackend
    _backend = SupabaseBackend(settings.supabase_url, settings.supabase_service_role_key)
    return _backend


async def close_backend() -> None:
    global _backend
    if _backend is not None:
        await _backend.close()
        _backend = None

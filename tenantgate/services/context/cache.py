from __future__ import annotations

import time

from tenantgate.core.config import get_settings
from tenantgate.services.context.types import ResolvedContext


# Process-local copy of operator contexts; the store stays the source of truth.
_context_cache: dict[str, tuple[float, ResolvedContext]] = {}


def remember_context(account_id: str, context: ResolvedContext) -> None:
    expires_at = time.monotonic() + max(0, int(get_settings().context_cache_ttl_s))
    _context_cache[account_id] = (expires_at, context)


def cached_context(account_id: str) -> ResolvedContext | None:
    # Return the last known context while it is still fresh.
    cached = _context_cache.get(account_id)
    if cached is None:
        return None
    expires_at, context = cached
    if expires_at <= time.monotonic():
        _context_cache.pop(account_id, None)
        return None
    return context


def invalidate_context(account_id: str) -> None:
    _context_cache.pop(account_id, None)


def reset_context_cache() -> None:
    # Clear cached contexts for deterministic tests.
    _context_cache.clear()

"""URL helpers shared by the driver, perception and the orchestrator."""

from typing import Optional

INTERNAL_URL_PREFIXES = ("chrome://", "chrome-extension://", "about:", "devtools://")

UNSAFE_URL_SCHEMES = ("javascript:", "data:")


def is_internal_url(url: Optional[str]) -> bool:
    """True for browser-internal pages, which cannot be debugged or captured."""
    return not url or url.startswith(INTERNAL_URL_PREFIXES)


def is_unsafe_url(url: str) -> bool:
    """True for ``javascript:`` and ``data:`` URLs (case-insensitive, leading whitespace ignored)."""
    return url.lstrip().lower().startswith(UNSAFE_URL_SCHEMES)

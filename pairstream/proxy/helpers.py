"""Pure helper functions for the chat server: cookies, credentials, error mapping."""

from __future__ import annotations

import json as _json
import logging
from urllib.parse import unquote

from ..types import LLMProviderError, MissingAPIKeyError, ProviderCredentials

logger = logging.getLogger(__name__)


def parse_cookies(cookie_header: str | None) -> dict[str, str]:
    """Parse a ``Cookie`` header into a dict with URL-decoded names and values."""
    cookies: dict[str, str] = {}
    if not cookie_header:
        return cookies
    for item in cookie_header.split(";"):
        name, sep, value = item.strip().partition("=")
        if not sep or not name:
            continue
        cookies[unquote(name.strip())] = unquote(value.strip())
    return cookies


def _json_cookie(cookies: dict[str, str], name: str) -> dict:
    raw = cookies.get(name)
    if not raw:
        return {}
    try:
        value = _json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s cookie", name)
        return {}
    return value if isinstance(value, dict) else {}


def credentials_from_cookies(cookie_header: str | None) -> ProviderCredentials:
    """Build per-request credentials from the ``apiKeys`` and ``providers`` cookies."""
    cookies = parse_cookies(cookie_header)
    api_keys = {k: v for k, v in _json_cookie(cookies, "apiKeys").items() if isinstance(v, str)}
    settings = {k: v for k, v in _json_cookie(cookies, "providers").items() if isinstance(v, dict)}
    return ProviderCredentials(api_keys=api_keys, provider_settings=settings)


def pre_stream_status(exc: Exception) -> int:
    """HTTP status for an error raised before any bytes were streamed."""
    if isinstance(exc, MissingAPIKeyError):
        return 401
    if isinstance(exc, LLMProviderError) and exc.status_code == 401:
        return 401
    return 500

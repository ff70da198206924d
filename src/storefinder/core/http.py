"""
HTTP helpers.

Shared defaults for the outbound clients (Supabase REST, Resend email API):
- one `httpx.AsyncClient` factory with a deterministic timeout and User-Agent,
- `error_message()` to pull a human-readable reason out of a failed response
  without depending on provider-specific error shapes.
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "storefinder/0.1.0 (+https://local)"


def build_async_client(
    *,
    base_url: str = "",
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `AsyncClient` with storefinder defaults.

    `transport` lets tests plug in `httpx.MockTransport`.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)
    return httpx.AsyncClient(
        base_url=base_url,
        headers=request_headers,
        timeout=timeout_seconds,
        transport=transport,
    )


def error_message(resp: httpx.Response) -> str:
    """Return a short description of a non-2xx response."""
    detail: Any = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("message") or body.get("error") or body.get("msg")
    if not detail:
        detail = resp.text.strip()[:200] or resp.reason_phrase
    return f"HTTP {resp.status_code}: {detail}"

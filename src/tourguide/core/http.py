"""
HTTP helpers shared by the tourism-board client and the language-model adapter.

Both talk JSON to a bearer-authenticated service, so header assembly lives here. The
attraction search is a one-off synchronous GET; non-2xx responses raise, and the
catalog decides whether that means degraded mode.
"""

from __future__ import annotations

from typing import Any

import httpx

DEFAULT_USER_AGENT = "tourguide/0.1.0 (+https://local)"


def json_headers(api_key: str | None = None) -> dict[str, str]:
    headers = {"User-Agent": DEFAULT_USER_AGENT, "Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> Any:
    """GET `url` and decode the body.

    Raises:
        httpx.HTTPError: Transport failure or non-2xx status.
        ValueError: The body is not JSON.
    """
    with httpx.Client(timeout=timeout_seconds, headers=json_headers()) as client:
        response = client.get(url, params=params, headers=headers)
    response.raise_for_status()
    return response.json()

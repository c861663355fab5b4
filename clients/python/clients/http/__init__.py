from typing import Any, Dict, Optional

import httpx


class HttpError(Exception):
    """Non-2xx response. Carries the decoded body when it was JSON."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP Error {status_code}: {body}")


class HttpTransportError(Exception):
    """The request never produced a response (DNS, connect, timeout...)."""
    pass


async def request(
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json_data: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """
    Executes an HTTP request and returns the decoded JSON body (None when empty).
    """
    headers = dict(headers or {})
    # Ensure we always accept JSON
    headers.setdefault("Accept", "application/json")

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            response = await client.request(method, url, headers=headers, json=json_data, params=params)
        except httpx.HTTPError as e:
            raise HttpTransportError(f"{method} {url} failed: {e}") from e

    body = _decode(response)
    if response.status_code >= 400:
        raise HttpError(response.status_code, body)
    return body


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text

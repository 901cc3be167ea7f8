"""HTTP send + status classification shared by the credentialed client and the token grants."""
from typing import Any

import httpx

from trackwatch.core.errors import TransientUpstreamError, UpstreamError

_TRANSIENT_STATUS = frozenset({429, 500, 502, 503, 504})


def send(http: httpx.Client, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Send one request. Timeouts and transport failures become TransientUpstreamError."""
    try:
        return http.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientUpstreamError(f"{method} {url} timed out") from e
    except httpx.TransportError as e:
        raise TransientUpstreamError(f"{method} {url} failed: {e}") from e


def raise_for_upstream_status(r: httpx.Response) -> None:
    """Raise UpstreamError (TransientUpstreamError for 5xx/429) unless the response is a success."""
    if r.is_success:
        return
    detail = (r.text or "")[:300]
    message = f"{r.request.method} {r.request.url} returned {r.status_code}: {detail}"
    if r.status_code in _TRANSIENT_STATUS:
        raise TransientUpstreamError(message, status_code=r.status_code)
    raise UpstreamError(message, status_code=r.status_code)

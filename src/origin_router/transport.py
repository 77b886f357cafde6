"""Transport port and the default httpx-backed implementation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Protocol

import httpx

from origin_router.errors import TransportError, TransportTimeoutError


@dataclass(frozen=True)
class RequestOptions:
    """Outgoing request description passed through interceptors to a transport.

    Attributes:
        method: HTTP method. ``None`` lets the merge target decide.
        headers: Request headers.
        params: Query string parameters.
        content: Raw request body.
        json: JSON-serializable body. Ignored by httpx when ``content`` is set.
        timeout: Per-request timeout in seconds.
        extensions: Free-form values for custom transports and interceptors;
            not forwarded by ``HttpxTransport``.
    """

    method: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    content: bytes | str | None = None
    json: Any = None
    timeout: float | None = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze mapping fields so options snapshots stay read-only."""
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(
            self, "extensions", MappingProxyType(dict(self.extensions))
        )

    def merged(self, other: RequestOptions) -> RequestOptions:
        """Return these options overlaid with every field set on ``other``.

        Mapping fields are merged key-wise; scalar fields from ``other``
        replace ours when they are not ``None``.
        """
        return RequestOptions(
            method=other.method if other.method is not None else self.method,
            headers={**self.headers, **other.headers},
            params={**self.params, **other.params},
            content=other.content if other.content is not None else self.content,
            json=other.json if other.json is not None else self.json,
            timeout=other.timeout if other.timeout is not None else self.timeout,
            extensions={**self.extensions, **other.extensions},
        )

    def with_headers(self, headers: Mapping[str, str]) -> RequestOptions:
        """Return a copy whose headers are exactly ``headers``."""
        return replace(self, headers=headers)


class Transport(Protocol):
    """Transport protocol used for both probes and application requests."""

    async def send(self, url: str, options: RequestOptions) -> httpx.Response:
        """Send one request and return the response.

        Raises:
            TransportError: When the request could not be completed.
        """


class HttpxTransport:
    """Transport adapter around a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        raise_for_status: bool = False,
    ) -> None:
        """Create a transport bound to ``client``.

        Args:
            client: Shared async HTTP client owned by the caller.
            raise_for_status: Treat non-2xx responses as ``TransportError``.
        """
        self._client = client
        self._raise_for_status = raise_for_status

    async def send(self, url: str, options: RequestOptions) -> httpx.Response:
        method = (options.method or "GET").upper()
        timeout = (
            httpx.USE_CLIENT_DEFAULT if options.timeout is None else options.timeout
        )
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(options.headers),
                params=dict(options.params),
                content=options.content,
                json=options.json if options.content is None else None,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(
                f"{method} {url} timed out", url=url
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(
                f"{method} {url} failed: {exc.__class__.__name__}: {exc}",
                url=url,
            ) from exc

        if self._raise_for_status and not response.is_success:
            raise TransportError(
                f"{method} {url} returned HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response

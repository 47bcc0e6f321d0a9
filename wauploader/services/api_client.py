"""HTTP adapter for Google API calls."""
from __future__ import annotations

from typing import Any, Optional

import httpx

from ..errors import AuthenticationError, TransferError
from ..protocols import ICredentialProvider


class StaticTokenProvider:
    """
    Credential provider for an already-acquired access token.

    Implements ICredentialProvider protocol.
    """

    def __init__(self, token: Optional[str]):
        self._token = token

    def is_authenticated(self) -> bool:
        return bool(self._token)

    def current_credentials(self) -> str:
        if not self._token:
            raise AuthenticationError("No access token available")
        return self._token


class GoogleAPIClient:
    """
    HTTP client adapter for Google REST APIs.

    Adds the bearer token on every request and raises TransferError for
    error responses and transport failures. Retrying is left to callers.
    """

    def __init__(
        self,
        credentials: ICredentialProvider,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._credentials = credentials
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        expected: tuple = (),
        headers: Optional[dict] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send an authenticated request.

        Args:
            method: HTTP method
            url: Absolute URL
            expected: Extra non-2xx status codes treated as success (e.g. 308)
            headers: Extra headers
            **kwargs: Passed to httpx (json, content, params, ...)

        Returns:
            The response

        Raises:
            TransferError: on error status or transport failure
        """
        if not self._client:
            raise RuntimeError("GoogleAPIClient not initialized. Use 'async with' context.")

        merged = {"Authorization": f"Bearer {self._credentials.current_credentials()}"}
        if headers:
            merged.update(headers)

        try:
            response = await self._client.request(method, url, headers=merged, **kwargs)
        except httpx.TransportError as exc:
            raise TransferError(f"{type(exc).__name__}: {exc}") from exc

        if response.is_success or response.status_code in expected:
            return response
        raise TransferError.from_response(response)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

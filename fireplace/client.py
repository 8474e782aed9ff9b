"""Async HTTP client for the OAuth2 token endpoint and the public key endpoint."""

from __future__ import annotations

from typing import Any

import httpx

from fireplace.exceptions import (
    KeyFetchError,
    TokenRequestError,
    TokenResponseParseError,
)
from fireplace.types import TokenResponse

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=5.0)
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class AuthHTTPClient:
    """Async client for token exchange and public key retrieval."""

    def __init__(
        self,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)

    async def request_access_token(self, token_uri: str, assertion: str) -> TokenResponse:
        """Exchange a signed JWT-bearer assertion for an access token."""
        try:
            response = await self._client.post(
                token_uri,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            raise TokenRequestError("Token endpoint unavailable.") from exc

        if not response.is_success:
            raise TokenRequestError(
                f"Token request failed with status {response.status_code}.",
                response.status_code,
            )

        payload = self._json_object(response, TokenResponseParseError)
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenResponseParseError("Token response is missing access_token.")
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
            raise TokenResponseParseError("Token response has invalid expires_in.")
        token_type = str(payload.get("token_type", "Bearer"))
        if token_type.lower() != "bearer":
            raise TokenResponseParseError(f"Unexpected token_type '{token_type}'.")
        return {"access_token": access_token, "expires_in": expires_in, "token_type": "Bearer"}

    async def fetch_public_keys(self, url: str) -> tuple[dict[str, str], str | None]:
        """Fetch the key id to PEM mapping and the response Cache-Control header."""
        try:
            response = await self._client.get(url)
        except httpx.RequestError as exc:
            raise KeyFetchError("Public key endpoint unavailable.") from exc

        if not response.is_success:
            raise KeyFetchError(
                f"Public key request failed with status {response.status_code}.",
                response.status_code,
            )

        payload = self._json_object(response, KeyFetchError)
        certificates: dict[str, str] = {}
        for key_id, pem in payload.items():
            if not isinstance(pem, str) or not pem.strip():
                raise KeyFetchError(f"Invalid public key entry '{key_id}'.", response.status_code)
            certificates[str(key_id)] = pem
        return certificates, response.headers.get("cache-control")

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AuthHTTPClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    @staticmethod
    def _json_object(
        response: httpx.Response,
        error_cls: type[TokenResponseParseError] | type[KeyFetchError],
    ) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise error_cls("Response body is not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise error_cls("Response body is not a JSON object.")
        return payload

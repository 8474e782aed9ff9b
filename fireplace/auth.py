"""Per-client auth state: access token issuance and ID token verification."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any

import httpx

from fireplace.access_token import AccessTokenIssuer
from fireplace.assertion import SignedAssertionBuilder
from fireplace.cache import PublicKeySetCache
from fireplace.client import AuthHTTPClient
from fireplace.config import Settings, get_settings
from fireplace.credentials import CredentialStore
from fireplace.id_token import IdTokenVerifier
from fireplace.types import IdentityTokenClaims


class AccessTokenAuth(httpx.Auth):
    """httpx auth flow attaching a cached bearer token to every request."""

    def __init__(self, issuer: AccessTokenIssuer) -> None:
        self._issuer = issuer

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, Any, None]:
        raise RuntimeError("AccessTokenAuth requires an httpx.AsyncClient.")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self._issuer.get_access_token()
        request.headers["Authorization"] = f"Bearer {token}"
        yield request


class FirebaseAuth:
    """Own the token cache, key cache and HTTP client for one client instance.

    Nothing here is process-global: two instances never share caches. Close
    the instance with ``aclose()`` or use it as an async context manager.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        now: Callable[[], float] | None = None,
    ) -> None:
        settings = settings or Settings()
        self._credentials = credentials
        self._http_client = AuthHTTPClient(
            timeout=settings.http.timeout(),
            http_client=http_client,
        )
        self.access_tokens = AccessTokenIssuer(
            credentials=credentials,
            http_client=self._http_client,
            assertion_builder=SignedAssertionBuilder(
                credentials,
                scopes=settings.tokens.scopes,
                lifetime_seconds=settings.tokens.assertion_lifetime_seconds,
            ),
            refresh_margin_seconds=settings.tokens.refresh_margin_seconds,
            now=now,
        )
        self.public_keys = PublicKeySetCache(
            http_client=self._http_client,
            url=settings.public_keys.url,
            default_ttl_seconds=settings.public_keys.default_ttl_seconds,
            now=now,
        )
        self.id_tokens = IdTokenVerifier(
            key_cache=self.public_keys,
            project_id=credentials.project_id,
            leeway_seconds=settings.id_tokens.clock_skew_leeway_seconds,
            issuer_prefix=settings.id_tokens.issuer_prefix,
            now=now,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> FirebaseAuth:
        """Build an instance from configured credentials."""
        settings = settings or get_settings()
        return cls(settings.credentials.load_store(), settings=settings, http_client=http_client)

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    @property
    def project_id(self) -> str:
        return self._credentials.project_id

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a bearer token for outbound API calls."""
        return await self.access_tokens.get_access_token(force_refresh=force_refresh)

    async def authorization_header(self) -> dict[str, str]:
        """Return the ``Authorization`` header for outbound API calls."""
        token = await self.get_access_token()
        return {"Authorization": f"Bearer {token}"}

    def bearer_auth(self) -> AccessTokenAuth:
        """Return an httpx auth flow backed by this instance's token cache."""
        return AccessTokenAuth(self.access_tokens)

    async def verify_id_token(
        self, token: str, project_id: str | None = None
    ) -> IdentityTokenClaims:
        """Verify an end-user ID token for ``project_id`` (defaults to the credential's)."""
        return await self.id_tokens.verify(token, expected_project_id=project_id)

    async def aclose(self) -> None:
        """Close the HTTP client if owned by this instance."""
        await self._http_client.aclose()

    async def __aenter__(self) -> FirebaseAuth:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

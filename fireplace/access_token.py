"""Cached OAuth2 access tokens for service-account credentials."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from fireplace.assertion import SignedAssertionBuilder
from fireplace.client import AuthHTTPClient
from fireplace.credentials import CredentialStore
from fireplace.exceptions import FireplaceAuthError
from fireplace.singleflight import SingleFlight
from fireplace.types import CachedAccessToken

DEFAULT_REFRESH_MARGIN_SECONDS = 5 * 60

logger = structlog.get_logger(__name__)


class AccessTokenIssuer:
    """Exchange signed assertions for access tokens and reuse them until near expiry.

    A cached token is handed out while it is more than ``refresh_margin_seconds``
    from expiry. Past that point the next caller triggers a refresh, and any
    caller arriving while it runs joins the same request. A failed refresh
    leaves the previous cache entry in place and propagates the error without
    retrying.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        http_client: AuthHTTPClient,
        assertion_builder: SignedAssertionBuilder | None = None,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._credentials = credentials
        self._http_client = http_client
        self._assertion_builder = assertion_builder or SignedAssertionBuilder(credentials)
        self._refresh_margin_seconds = refresh_margin_seconds
        self._now = now or time.time
        self._cached: CachedAccessToken | None = None
        self._generation = 0
        self._refresh: SingleFlight[CachedAccessToken] = SingleFlight()

    @property
    def cached_token(self) -> CachedAccessToken | None:
        return self._cached

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a bearer token that is not within the refresh margin of expiry."""
        cached = self._cached
        if (
            not force_refresh
            and cached is not None
            and cached.is_fresh(self._now(), self._refresh_margin_seconds)
        ):
            return cached.token

        refreshed = await self._refresh.run(self._fetch_access_token)
        return refreshed.token

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes.

        A refresh already in flight still answers its waiters, but its token is
        not cached.
        """
        self._cached = None
        self._generation += 1

    async def _fetch_access_token(self) -> CachedAccessToken:
        """Request a new token and swap it into the cache."""
        requested_at = self._now()
        generation = self._generation
        try:
            assertion = self._assertion_builder.build_assertion(requested_at)
            response = await self._http_client.request_access_token(
                self._credentials.token_uri, assertion
            )
        except FireplaceAuthError as exc:
            logger.warning("access_token_refresh_failed", code=exc.code)
            raise

        token = CachedAccessToken(
            token=response["access_token"],
            expires_at=requested_at + response["expires_in"],
        )
        if generation == self._generation:
            self._cached = token
        logger.info(
            "access_token_refreshed",
            client_email=self._credentials.client_email,
            expires_in=response["expires_in"],
        )
        return token

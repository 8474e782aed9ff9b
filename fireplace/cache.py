"""Public key set cache for local ID token verification."""

from __future__ import annotations

import time
from collections.abc import Callable
from types import MappingProxyType

import structlog
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from fireplace.client import AuthHTTPClient
from fireplace.exceptions import KeyFetchError, KeyNotFoundError
from fireplace.singleflight import SingleFlight
from fireplace.types import PublicKeyEntry, PublicKeySet

PUBLIC_KEYS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
DEFAULT_KEY_SET_TTL_SECONDS = 60 * 60

logger = structlog.get_logger(__name__)


def parse_max_age(cache_control: str | None) -> int | None:
    """Return the ``max-age`` directive of a Cache-Control header, if usable."""
    if not cache_control:
        return None
    for directive in cache_control.split(","):
        name, _, value = directive.strip().partition("=")
        if name.strip().lower() != "max-age":
            continue
        value = value.strip().strip('"')
        if not value.isdigit():
            return None
        return int(value)
    return None


def _load_public_key(key_id: str, pem: str) -> tuple[str, float | None]:
    """Decode a certificate or public key PEM into SubjectPublicKeyInfo PEM and expiry."""
    pem_bytes = pem.encode("utf-8")
    not_valid_after: float | None = None
    try:
        if b"BEGIN CERTIFICATE" in pem_bytes:
            certificate = x509.load_pem_x509_certificate(pem_bytes)
            public_key = certificate.public_key()
            not_valid_after = certificate.not_valid_after_utc.timestamp()
        else:
            public_key = serialization.load_pem_public_key(pem_bytes)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyFetchError(f"Public key '{key_id}' could not be decoded.") from exc

    if not isinstance(public_key, RSAPublicKey):
        raise KeyFetchError(f"Public key '{key_id}' must be RSA.")
    public_key_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return public_key_pem, not_valid_after


class PublicKeySetCache:
    """Manage key set refresh with server-advertised lifetimes.

    The whole set is replaced on each fetch. Concurrent callers that need a
    fetch share a single request.
    """

    def __init__(
        self,
        http_client: AuthHTTPClient,
        url: str = PUBLIC_KEYS_URL,
        default_ttl_seconds: int = DEFAULT_KEY_SET_TTL_SECONDS,
        now: Callable[[], float] | None = None,
    ) -> None:
        """Create cache manager with a fallback TTL for responses without max-age."""
        self._http_client = http_client
        self._url = url
        self._default_ttl_seconds = default_ttl_seconds
        self._now = now or time.time
        self._key_set: PublicKeySet | None = None
        self._generation = 0
        self._fetch: SingleFlight[PublicKeySet] = SingleFlight()

    @property
    def key_set(self) -> PublicKeySet | None:
        return self._key_set

    async def get_key_set(self, force_refresh: bool = False) -> PublicKeySet:
        """Return the cached key set, fetching a fresh one when it has expired."""
        key_set = self._key_set
        if not force_refresh and key_set is not None and not key_set.is_expired(self._now()):
            return key_set
        return await self._fetch.run(self._fetch_key_set)

    async def get_key(self, key_id: str) -> PublicKeyEntry:
        """Return the key for ``key_id``, refetching once if it is not cached."""
        key_set = self._key_set
        fetched = False
        if key_set is None or key_set.is_expired(self._now()):
            key_set = await self._fetch.run(self._fetch_key_set)
            fetched = True

        entry = key_set.entries.get(key_id)
        if entry is None and not fetched:
            key_set = await self._fetch.run(self._fetch_key_set)
            entry = key_set.entries.get(key_id)
        if entry is None:
            logger.warning("public_key_not_found", kid=key_id)
            raise KeyNotFoundError(key_id)
        return entry

    def invalidate(self) -> None:
        """Drop the cached key set so the next lookup fetches.

        A fetch already in flight still answers its waiters without being cached.
        """
        self._key_set = None
        self._generation += 1

    async def _fetch_key_set(self) -> PublicKeySet:
        """Fetch, decode and swap in a complete key set."""
        fetched_at = self._now()
        generation = self._generation
        try:
            certificates, cache_control = await self._http_client.fetch_public_keys(self._url)
            max_age = parse_max_age(cache_control)
            ttl = max_age if max_age is not None else self._default_ttl_seconds
            expires_at = fetched_at + ttl

            entries: dict[str, PublicKeyEntry] = {}
            for key_id, pem in certificates.items():
                public_key_pem, not_valid_after = _load_public_key(key_id, pem)
                # Set expiry only schedules refetches; entry windows are independent of it.
                if not_valid_after is not None:
                    valid_until = not_valid_after
                else:
                    valid_until = fetched_at + max(ttl, self._default_ttl_seconds)
                entries[key_id] = PublicKeyEntry(
                    key_id=key_id,
                    public_key_pem=public_key_pem,
                    fetched_at=fetched_at,
                    valid_until=valid_until,
                )
        except KeyFetchError as exc:
            logger.warning("public_keys_fetch_failed", status_code=exc.status_code)
            raise

        key_set = PublicKeySet(
            entries=MappingProxyType(entries),
            fetched_at=fetched_at,
            expires_at=expires_at,
        )
        if generation == self._generation:
            self._key_set = key_set
        logger.info("public_keys_refreshed", key_count=len(entries), max_age=ttl)
        return key_set

"""Data contract types shared by the token and key caches."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypedDict

REGISTERED_CLAIMS = frozenset({"sub", "iss", "aud", "iat", "exp", "auth_time"})


class TokenResponse(TypedDict):
    """Normalized token endpoint response payload."""

    access_token: str
    expires_in: int
    token_type: str


@dataclass(frozen=True)
class CachedAccessToken:
    """Bearer token together with its absolute expiry in epoch seconds."""

    token: str = field(repr=False)
    expires_at: float

    def is_fresh(self, now: float, margin: float) -> bool:
        """Return True while the token is more than `margin` seconds from expiry."""
        return self.expires_at - margin > now


@dataclass(frozen=True)
class PublicKeyEntry:
    """One public key from the rotating key set."""

    key_id: str
    public_key_pem: str = field(repr=False)
    fetched_at: float
    valid_until: float

    def is_valid_at(self, now: float) -> bool:
        return now < self.valid_until


@dataclass(frozen=True)
class PublicKeySet:
    """Key set from a single fetch; never merged with another fetch."""

    entries: Mapping[str, PublicKeyEntry]
    fetched_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class IdentityTokenClaims:
    """Verified ID token claims: registered fields plus application-defined extras."""

    subject: str
    issuer: str
    audience: str
    issued_at: int
    expires_at: int
    auth_time: int | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def uid(self) -> str:
        """Return the user id, which ID tokens carry as the subject."""
        return self.subject

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> IdentityTokenClaims:
        """Split a validated JWT payload into known fields and opaque extras."""
        auth_time = payload.get("auth_time")
        extra = {key: value for key, value in payload.items() if key not in REGISTERED_CLAIMS}
        return cls(
            subject=str(payload["sub"]),
            issuer=str(payload["iss"]),
            audience=str(payload["aud"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
            auth_time=int(auth_time) if auth_time is not None else None,
            extra=MappingProxyType(extra),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the claims as a flat JWT-style payload."""
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "sub": self.subject,
                "iss": self.issuer,
                "aud": self.audience,
                "iat": self.issued_at,
                "exp": self.expires_at,
            }
        )
        if self.auth_time is not None:
            payload["auth_time"] = self.auth_time
        return payload

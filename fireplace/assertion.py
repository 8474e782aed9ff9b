"""Signed JWT assertions built from service-account credentials."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from jose import jwt
from jose.exceptions import JOSEError

from fireplace.credentials import CredentialStore
from fireplace.exceptions import SigningError

JWT_ALGORITHM = "RS256"
ASSERTION_LIFETIME_SECONDS = 60 * 60
DEFAULT_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/firebase.database",
    "https://www.googleapis.com/auth/firebase.messaging",
    "https://www.googleapis.com/auth/identitytoolkit",
    "https://www.googleapis.com/auth/userinfo.email",
)


class SignedAssertionBuilder:
    """Build RS256 JWTs signed with the service-account private key."""

    def __init__(
        self,
        credentials: CredentialStore,
        scopes: Sequence[str] = DEFAULT_SCOPES,
        lifetime_seconds: int = ASSERTION_LIFETIME_SECONDS,
    ) -> None:
        self._credentials = credentials
        self._scope = " ".join(scopes)
        self._lifetime_seconds = lifetime_seconds

    @property
    def scope(self) -> str:
        return self._scope

    def build_assertion(self, now: float) -> str:
        """Return the JWT-bearer grant assertion for the token endpoint.

        The result depends only on the credential and ``now``.
        """
        issued_at = int(now)
        claims = {
            "iss": self._credentials.client_email,
            "sub": self._credentials.client_email,
            "aud": self._credentials.token_uri,
            "scope": self._scope,
            "iat": issued_at,
            "exp": issued_at + self._lifetime_seconds,
        }
        return self._sign(claims)

    def build_self_signed_jwt(self, audience: str, now: float) -> str:
        """Return a JWT usable directly as a bearer token for ``audience``.

        Services such as Firestore accept this without a token exchange.
        """
        issued_at = int(now)
        claims: dict[str, Any] = {
            "iss": self._credentials.client_email,
            "sub": self._credentials.client_email,
            "aud": audience,
            "iat": issued_at,
            "exp": issued_at + self._lifetime_seconds,
        }
        if self._credentials.client_id:
            claims["uid"] = self._credentials.client_id
        return self._sign(claims)

    def _sign(self, claims: dict[str, Any]) -> str:
        try:
            return jwt.encode(
                claims,
                self._credentials.private_key_pem,
                algorithm=JWT_ALGORITHM,
                headers={"kid": self._credentials.private_key_id},
            )
        except (JOSEError, ValueError, TypeError) as exc:
            raise SigningError("Failed to sign JWT with service account key.") from exc

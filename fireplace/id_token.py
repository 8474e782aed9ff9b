"""ID token verification against the rotating public key set."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import structlog
from jose import jws, jwt
from jose.exceptions import JWSError, JWTError

from fireplace.cache import PublicKeySetCache
from fireplace.exceptions import (
    ExpiredTokenError,
    IdTokenError,
    InvalidSignatureError,
    MalformedTokenError,
    MissingSubjectError,
    NotYetValidError,
    UnsupportedAlgorithmError,
    WrongAudienceError,
    WrongIssuerError,
)
from fireplace.types import IdentityTokenClaims

JWT_ALGORITHM = "RS256"
ISSUER_PREFIX = "https://securetoken.google.com/"
DEFAULT_LEEWAY_SECONDS = 5
MAX_SUBJECT_LENGTH = 128

logger = structlog.get_logger(__name__)


class IdTokenVerifier:
    """Verify end-user ID tokens issued for a project.

    Only RS256 is accepted and the signing key is selected by ``kid`` from the
    public key set. The issuer must be ``https://securetoken.google.com/<project>``
    and the audience the project id. Time claims get a small clock-skew leeway.
    """

    def __init__(
        self,
        key_cache: PublicKeySetCache,
        project_id: str,
        leeway_seconds: float = DEFAULT_LEEWAY_SECONDS,
        issuer_prefix: str = ISSUER_PREFIX,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._key_cache = key_cache
        self._project_id = project_id
        self._leeway_seconds = leeway_seconds
        self._issuer_prefix = issuer_prefix
        self._now = now or time.time

    async def verify(
        self,
        token: str,
        expected_project_id: str | None = None,
        now: float | None = None,
    ) -> IdentityTokenClaims:
        """Verify signature and claims, returning the full claim set."""
        project_id = expected_project_id or self._project_id
        current = self._now() if now is None else now
        try:
            return await self._verify(token, project_id, current)
        except IdTokenError as exc:
            logger.info("id_token_rejected", code=exc.code)
            raise

    async def _verify(self, token: str, project_id: str, now: float) -> IdentityTokenClaims:
        kid = self._read_header(token)
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError("Invalid token.") from exc

        entry = await self._key_cache.get_key(kid)
        if not entry.is_valid_at(now):
            raise InvalidSignatureError("Signing key validity window has lapsed.")
        try:
            verified = jws.verify(token, entry.public_key_pem, algorithms=[JWT_ALGORITHM])
        except JWSError as exc:
            raise InvalidSignatureError("Token signature verification failed.") from exc

        payload = self._decode_payload(verified)
        self._validate_claims(payload, project_id, now)
        return IdentityTokenClaims.from_payload(payload)

    @staticmethod
    def _read_header(token: str) -> str:
        """Return the header ``kid`` after checking the declared algorithm."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedTokenError("Invalid token.") from exc

        algorithm = header.get("alg")
        if algorithm != JWT_ALGORITHM:
            raise UnsupportedAlgorithmError(f"Unsupported token algorithm '{algorithm}'.")
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid.strip():
            raise MalformedTokenError("Token header is missing kid.")
        return kid

    @staticmethod
    def _decode_payload(verified: bytes | str) -> dict[str, Any]:
        try:
            payload = json.loads(verified)
        except ValueError as exc:
            raise MalformedTokenError("Token payload is not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise MalformedTokenError("Token payload is not a JSON object.")
        return payload

    def _validate_claims(self, payload: dict[str, Any], project_id: str, now: float) -> None:
        expected_issuer = f"{self._issuer_prefix}{project_id}"
        if payload.get("iss") != expected_issuer:
            raise WrongIssuerError("Token issuer does not match project.")
        if payload.get("aud") != project_id:
            raise WrongAudienceError("Token audience does not match project.")

        expires_at = _numeric_claim(payload, "exp")
        if expires_at <= now - self._leeway_seconds:
            raise ExpiredTokenError("Token has expired.")
        issued_at = _numeric_claim(payload, "iat")
        if issued_at > now + self._leeway_seconds:
            raise NotYetValidError("Token issued in the future.")
        if "auth_time" in payload:
            auth_time = _numeric_claim(payload, "auth_time")
            if auth_time > now + self._leeway_seconds:
                raise NotYetValidError("Token authentication time is in the future.")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject or len(subject) > MAX_SUBJECT_LENGTH:
            raise MissingSubjectError("Token subject is missing or invalid.")


def _numeric_claim(payload: dict[str, Any], name: str) -> float:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedTokenError(f"Token claim '{name}' is missing or not numeric.")
    return float(value)

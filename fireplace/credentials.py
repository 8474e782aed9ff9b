"""Service-account credential parsing and read-only storage."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fireplace.exceptions import CredentialParseError

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


class ServiceAccountDocument(BaseModel):
    """Schema of the service-account JSON file downloaded from the console."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["service_account"] | None = None
    project_id: str = Field(min_length=1)
    private_key: str = Field(min_length=1)
    private_key_id: str = Field(min_length=1)
    client_email: str = Field(min_length=1)
    client_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI


@dataclass(frozen=True)
class ServiceAccountCredential:
    """Immutable service-account key material.

    The private key is excluded from ``repr`` so the credential can be logged
    or printed without leaking it.
    """

    client_email: str
    private_key_pem: str = field(repr=False)
    private_key_id: str
    token_uri: str
    project_id: str
    client_id: str | None = None


class CredentialStore:
    """Hold parsed service-account credentials for the lifetime of a client."""

    def __init__(self, document: Mapping[str, Any]) -> None:
        """Validate a credential document and decode its private key."""
        try:
            parsed = ServiceAccountDocument.model_validate(dict(document))
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
            raise CredentialParseError(
                f"Invalid service account document: {', '.join(fields)}."
            ) from exc

        self._load_private_key(parsed.private_key)
        self._credential = ServiceAccountCredential(
            client_email=parsed.client_email,
            private_key_pem=parsed.private_key,
            private_key_id=parsed.private_key_id,
            token_uri=parsed.token_uri,
            project_id=parsed.project_id,
            client_id=parsed.client_id,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> CredentialStore:
        """Build a store from service-account JSON text."""
        try:
            document = json.loads(text)
        except ValueError as exc:
            raise CredentialParseError("Service account document is not valid JSON.") from exc
        if not isinstance(document, dict):
            raise CredentialParseError("Service account document must be a JSON object.")
        return cls(document)

    @classmethod
    def from_file(cls, path: str | Path) -> CredentialStore:
        """Build a store from a service-account JSON file on disk."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise CredentialParseError(f"Unable to read service account file '{path}'.") from exc
        return cls.from_json(text)

    @property
    def credential(self) -> ServiceAccountCredential:
        return self._credential

    @property
    def client_email(self) -> str:
        return self._credential.client_email

    @property
    def private_key_pem(self) -> str:
        return self._credential.private_key_pem

    @property
    def private_key_id(self) -> str:
        return self._credential.private_key_id

    @property
    def token_uri(self) -> str:
        return self._credential.token_uri

    @property
    def project_id(self) -> str:
        return self._credential.project_id

    @property
    def client_id(self) -> str | None:
        return self._credential.client_id

    def __repr__(self) -> str:
        return (
            f"CredentialStore(client_email={self.client_email!r}, "
            f"project_id={self.project_id!r})"
        )

    @staticmethod
    def _load_private_key(private_key_pem: str) -> RSAPrivateKey:
        """Decode the PEM private key, requiring RSA for RS256 signing."""
        try:
            key = serialization.load_pem_private_key(private_key_pem.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise CredentialParseError("Service account private key could not be decoded.") from exc
        if not isinstance(key, RSAPrivateKey):
            raise CredentialParseError("Service account private key must be RSA.")
        return key

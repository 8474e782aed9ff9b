"""Shared fixtures: RSA key material, certificates, credentials and a fake clock."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from jose import jwt as jose_jwt

from fireplace.credentials import CredentialStore

PROJECT_ID = "test-project"
CLIENT_EMAIL = "firebase-adminsdk@test-project.iam.gserviceaccount.com"
TOKEN_URI = "https://oauth2.googleapis.com/token"
CLOCK_START = 1_700_000_000.0


@dataclass(frozen=True)
class KeyMaterial:
    """PEM-encoded RSA keypair plus a self-signed certificate for the public key."""

    kid: str
    private_key_pem: str
    public_key_pem: str
    certificate_pem: str


def generate_key_material(kid: str, not_valid_after: datetime | None = None) -> KeyMaterial:
    """Create an RSA keypair and wrap its public key in an X.509 certificate."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )

    expires = not_valid_after or datetime.now(UTC) + timedelta(days=14)
    subject = x509.Name(
        [x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.system.gserviceaccount.com")]
    )
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(expires - timedelta(days=30))
        .not_valid_after(expires)
        .sign(private_key, hashes.SHA256())
    )
    certificate_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")
    return KeyMaterial(
        kid=kid,
        private_key_pem=private_pem,
        public_key_pem=public_pem,
        certificate_pem=certificate_pem,
    )


class FakeClock:
    """Controllable wall clock in epoch seconds."""

    def __init__(self, start: float = CLOCK_START) -> None:
        self.current = start

    def now(self) -> float:
        """Return current synthetic time."""
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture(scope="session")
def service_account_key() -> KeyMaterial:
    """Service-account signing key shared across the test session."""
    return generate_key_material("sa-key-1")


@pytest.fixture(scope="session")
def signing_key() -> KeyMaterial:
    """Identity-provider key that signs ID tokens."""
    return generate_key_material("idp-key-1")


@pytest.fixture(scope="session")
def other_signing_key() -> KeyMaterial:
    """Second identity-provider key used for rotation scenarios."""
    return generate_key_material("idp-key-2")


@pytest.fixture
def service_account_document(service_account_key: KeyMaterial) -> dict[str, str]:
    """Service-account JSON document as downloaded from the console."""
    return {
        "type": "service_account",
        "project_id": PROJECT_ID,
        "private_key_id": service_account_key.kid,
        "private_key": service_account_key.private_key_pem,
        "client_email": CLIENT_EMAIL,
        "client_id": "123456789012345678901",
        "token_uri": TOKEN_URI,
    }


@pytest.fixture
def credentials(service_account_document: dict[str, str]) -> CredentialStore:
    """Parsed credential store."""
    return CredentialStore(service_account_document)


@pytest.fixture
def clock() -> FakeClock:
    """Fresh fake clock per test."""
    return FakeClock()


@pytest.fixture
def id_token_claims(clock: FakeClock) -> Callable[..., dict[str, Any]]:
    """Factory for valid ID token claims relative to the fake clock."""

    def build(**overrides: Any) -> dict[str, Any]:
        now = int(clock.now())
        claims: dict[str, Any] = {
            "iss": f"https://securetoken.google.com/{PROJECT_ID}",
            "aud": PROJECT_ID,
            "auth_time": now - 60,
            "user_id": "user-123",
            "sub": "user-123",
            "iat": now - 30,
            "exp": now + 3600,
            "email": "user@example.com",
            "firebase": {"sign_in_provider": "password"},
        }
        claims.update(overrides)
        return {key: value for key, value in claims.items() if value is not None}

    return build


@pytest.fixture
def sign_id_token() -> Callable[..., str]:
    """Factory signing claims as an RS256 ID token with the key's kid."""

    def sign(
        claims: dict[str, Any],
        key: KeyMaterial,
        kid: str | None = None,
        algorithm: str = "RS256",
    ) -> str:
        signing_key = key.private_key_pem if algorithm.startswith("RS") else "shared-secret"
        return jose_jwt.encode(
            claims,
            signing_key,
            algorithm=algorithm,
            headers={"kid": kid or key.kid},
        )

    return sign


@pytest.fixture
def make_key_material() -> Callable[..., KeyMaterial]:
    """Factory for additional key material, e.g. with a custom certificate expiry."""
    return generate_key_material

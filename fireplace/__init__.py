"""Public fireplace auth exports."""

from fireplace.access_token import AccessTokenIssuer
from fireplace.assertion import SignedAssertionBuilder
from fireplace.auth import AccessTokenAuth, FirebaseAuth
from fireplace.cache import PublicKeySetCache
from fireplace.credentials import CredentialStore, ServiceAccountCredential
from fireplace.id_token import IdTokenVerifier
from fireplace.types import IdentityTokenClaims

__all__ = [
    "AccessTokenAuth",
    "AccessTokenIssuer",
    "CredentialStore",
    "FirebaseAuth",
    "IdTokenVerifier",
    "IdentityTokenClaims",
    "PublicKeySetCache",
    "ServiceAccountCredential",
    "SignedAssertionBuilder",
]

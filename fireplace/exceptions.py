"""Exception hierarchy for credential, access-token and ID-token failures."""

from __future__ import annotations


class FireplaceAuthError(Exception):
    """Base class for all fireplace auth exceptions."""

    code = "auth_error"

    def __init__(self, detail: str, code: str | None = None) -> None:
        """Initialize with user-facing detail and machine-readable code."""
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code


class CredentialParseError(FireplaceAuthError):
    """Raised when a service-account document is missing fields or has an unusable key."""

    code = "invalid_credentials"


class SigningError(FireplaceAuthError):
    """Raised when a JWT cannot be signed with the service-account key."""

    code = "signing_failed"


class AccessTokenError(FireplaceAuthError):
    """Base class for failures while obtaining an access token."""


class TokenRequestError(AccessTokenError):
    """Raised when the token endpoint is unreachable or answers with an error status."""

    code = "token_request_failed"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.status_code = status_code


class TokenResponseParseError(AccessTokenError):
    """Raised when a successful token response has a malformed body."""

    code = "token_response_invalid"


class KeyFetchError(FireplaceAuthError):
    """Raised when the public key set cannot be fetched or decoded."""

    code = "key_fetch_failed"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.status_code = status_code


class IdTokenError(FireplaceAuthError):
    """Base class for ID token verification failures."""

    code = "invalid_token"


class MalformedTokenError(IdTokenError):
    """Raised when a token cannot be decoded or lacks required structure."""


class KeyNotFoundError(IdTokenError):
    """Raised when a key id is absent from a freshly fetched key set."""

    code = "unknown_key"

    def __init__(self, key_id: str) -> None:
        super().__init__(f"Public key '{key_id}' not found.")
        self.key_id = key_id


class UnsupportedAlgorithmError(IdTokenError):
    """Raised when the token header declares an algorithm other than RS256."""

    code = "unsupported_algorithm"


class InvalidSignatureError(IdTokenError):
    """Raised when the signature does not verify against a valid key."""

    code = "invalid_signature"


class ClaimValidationError(IdTokenError):
    """Base class for claim checks that fail after the signature verified."""


class ExpiredTokenError(ClaimValidationError):
    code = "token_expired"


class NotYetValidError(ClaimValidationError):
    code = "token_not_yet_valid"


class WrongAudienceError(ClaimValidationError):
    code = "wrong_audience"


class WrongIssuerError(ClaimValidationError):
    code = "wrong_issuer"


class MissingSubjectError(ClaimValidationError):
    code = "missing_subject"

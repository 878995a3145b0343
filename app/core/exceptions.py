# tokenline/app/core/exceptions.py
"""Typed failures raised by the credential verifier, ledger and lifecycle engine.

Every exception carries the generic, non-enumerating message that is shown to
the caller. Anything more specific (why a refresh token was rejected, which
provider call failed) goes to the logs only.
"""
from typing import Dict, Optional


class AuthAPIException(Exception):
    """Base exception for all application errors."""

    message = "Internal server error"
    error_code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.message
        self.headers = headers
        super().__init__(self.message)


class InvalidCredentialsError(AuthAPIException):
    """Login failed. Same message whether or not the account exists."""

    message = "Incorrect email or password"
    error_code = "INVALID_CREDENTIALS"
    status_code = 401

    def __init__(self):
        super().__init__(headers={"WWW-Authenticate": "Bearer"})


class RefreshTokenInvalidError(AuthAPIException):
    """Missing, malformed, forged, expired or revoked refresh token.

    ``reason`` keeps the internal cause for logging; it is never rendered.
    """

    message = "Invalid refresh token"
    error_code = "REFRESH_TOKEN_INVALID"
    status_code = 401

    def __init__(self, reason: str = "unknown"):
        self.reason = reason
        super().__init__(headers={"WWW-Authenticate": "Bearer"})


class UnsupportedProviderError(AuthAPIException):
    message = "Unsupported provider"
    error_code = "UNSUPPORTED_PROVIDER"
    status_code = 400

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__()


class AccountLinkRequiredError(AuthAPIException):
    """Federated email matches an existing password account and linking is disabled."""

    message = "Account could not be linked"
    error_code = "ACCOUNT_LINK_REQUIRED"
    status_code = 409


class EmailAlreadyRegisteredError(AuthAPIException):
    message = "Unable to register with the provided details"
    error_code = "REGISTRATION_FAILED"
    status_code = 409


class DuplicateJtiError(AuthAPIException):
    """Two refresh records with the same jti. Integrity violation, never expected."""

    error_code = "INTEGRITY_ERROR"
    status_code = 500

    def __init__(self, jti: str):
        self.jti = jti
        super().__init__()


class UpstreamUnavailableError(AuthAPIException):
    """Storage or the OAuth provider could not be reached or did not commit."""

    message = "Service temporarily unavailable"
    error_code = "UPSTREAM_UNAVAILABLE"
    status_code = 503

    def __init__(self, upstream: str = "storage"):
        self.upstream = upstream
        super().__init__()

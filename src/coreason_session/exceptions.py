# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_session

"""
Custom exceptions for the coreason-session package.
"""

from enum import StrEnum


class CoreasonSessionError(Exception):
    """Base exception for all coreason-session errors."""


class InvalidIssuerUrlError(CoreasonSessionError):
    """Raised when the issuer URL cannot be parsed as an absolute http(s) URL."""


class DiscoveryFailedError(CoreasonSessionError):
    """Raised when the provider's discovery document cannot be fetched or parsed."""


class OversizedResponseError(CoreasonSessionError):
    """Raised when an HTTP response is too large."""


class AuthorizationFailureReason(StrEnum):
    CANCELLED = "cancelled"
    TRANSPORT = "transport"
    REJECTED = "rejected"


class AuthorizationFailedError(CoreasonSessionError):
    """
    Raised when an interactive authorization attempt does not produce tokens.

    Attributes:
        reason (AuthorizationFailureReason): Whether the user cancelled, the network failed,
            or the provider rejected the request.
    """

    def __init__(self, message: str, reason: AuthorizationFailureReason) -> None:
        super().__init__(message)
        self.reason = reason


class TokenExchangeFailedError(CoreasonSessionError):
    """
    Raised when the token endpoint does not return a usable token response.

    Attributes:
        status_code (int | None): HTTP status, None for transport failures.
        error (str | None): OAuth error code (e.g. "invalid_grant") when the body carried one.
        error_description (str | None): Human readable OAuth error description.
        transient (bool): True for transport failures and timeouts.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.error_description = error_description
        self.transient = transient


class TokenRefreshFailedError(CoreasonSessionError):
    """Raised when an expired access token could not be refreshed."""


class LogoutRemoteFailedError(CoreasonSessionError):
    """Raised internally when RP-initiated logout fails. Never blocks local sign-out."""


class CorruptPersistedStateError(CoreasonSessionError):
    """Raised when the persisted session record cannot be decoded. Recovered as signed out."""


class FlowAlreadyInProgressError(CoreasonSessionError):
    """Raised when an authorization flow is started while another one is pending."""


class NotSignedInError(CoreasonSessionError):
    """Raised when an authenticated action is attempted without a session."""


class SubmissionFailedError(CoreasonSessionError):
    """Raised when a scanned payload could not be delivered to the backend."""

# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_session

from coreason_session.exceptions import (
    AuthorizationFailedError,
    AuthorizationFailureReason,
    CoreasonSessionError,
    CorruptPersistedStateError,
    DiscoveryFailedError,
    FlowAlreadyInProgressError,
    InvalidIssuerUrlError,
    LogoutRemoteFailedError,
    NotSignedInError,
    OversizedResponseError,
    SubmissionFailedError,
    TokenExchangeFailedError,
    TokenRefreshFailedError,
)


def test_exception_hierarchy() -> None:
    """Test that all custom exceptions inherit from CoreasonSessionError."""
    for exc in (
        AuthorizationFailedError,
        CorruptPersistedStateError,
        DiscoveryFailedError,
        FlowAlreadyInProgressError,
        InvalidIssuerUrlError,
        LogoutRemoteFailedError,
        NotSignedInError,
        OversizedResponseError,
        SubmissionFailedError,
        TokenExchangeFailedError,
        TokenRefreshFailedError,
    ):
        assert issubclass(exc, CoreasonSessionError)


def test_authorization_failed_carries_reason() -> None:
    err = AuthorizationFailedError("Authorization cancelled by the user", AuthorizationFailureReason.CANCELLED)
    assert str(err) == "Authorization cancelled by the user"
    assert err.reason == "cancelled"


def test_token_exchange_failed_defaults() -> None:
    err = TokenExchangeFailedError("boom")
    assert err.status_code is None
    assert err.error is None
    assert err.error_description is None
    assert err.transient is False

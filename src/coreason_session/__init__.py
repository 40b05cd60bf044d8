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
OpenID Connect sign-in for CoReason scanning clients: discovery, authorization code with PKCE,
durable session state, on-demand token refresh and RP-initiated logout.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .authorization import AuthorizationFlowDriver
from .config import CoreasonSessionConfig
from .discovery import DiscoveryClient
from .exceptions import (
    AuthorizationFailedError,
    CoreasonSessionError,
    DiscoveryFailedError,
    FlowAlreadyInProgressError,
    InvalidIssuerUrlError,
    NotSignedInError,
    TokenRefreshFailedError,
)
from .logout import SessionTerminator
from .manager import SessionManager
from .models import AuthState, ProviderConfiguration
from .presenter import ConsoleRedirectPresenter, RedirectPresenter
from .refresh import TokenRefreshGuard
from .state_store import AuthStateStore
from .storage import FileKeyValueStorage, MemoryKeyValueStorage
from .submission import ScanSubmitter

__all__ = [
    "AuthState",
    "AuthStateStore",
    "AuthorizationFailedError",
    "AuthorizationFlowDriver",
    "ConsoleRedirectPresenter",
    "CoreasonSessionConfig",
    "CoreasonSessionError",
    "DiscoveryClient",
    "DiscoveryFailedError",
    "FileKeyValueStorage",
    "FlowAlreadyInProgressError",
    "InvalidIssuerUrlError",
    "MemoryKeyValueStorage",
    "NotSignedInError",
    "ProviderConfiguration",
    "RedirectPresenter",
    "ScanSubmitter",
    "SessionManager",
    "SessionTerminator",
    "TokenRefreshFailedError",
    "TokenRefreshGuard",
]

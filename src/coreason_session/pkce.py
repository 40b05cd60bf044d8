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
PKCE (RFC 7636) helpers. S256 only.
"""

import hmac

from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from coreason_session.models import PKCEParameters

# 64 characters from [A-Za-z0-9], ~380 bits of entropy; RFC 7636 allows 43-128.
CODE_VERIFIER_LENGTH = 64


def generate_pkce(length: int = CODE_VERIFIER_LENGTH) -> PKCEParameters:
    """
    Generates a fresh code verifier and its S256 challenge.

    Args:
        length: Verifier length, between 43 and 128.

    Returns:
        PKCEParameters: The verifier/challenge pair.

    Raises:
        ValueError: If the length is outside the RFC 7636 bounds.
    """
    if not 43 <= length <= 128:
        raise ValueError("PKCE code verifier length must be between 43 and 128 characters")
    code_verifier = generate_token(length)
    return PKCEParameters(
        code_verifier=code_verifier,
        code_challenge=create_s256_code_challenge(code_verifier),
        code_challenge_method="S256",
    )


def verify_code_challenge(code_verifier: str, code_challenge: str) -> bool:
    """
    Checks that a verifier hashes to the given S256 challenge.
    """
    expected = create_s256_code_challenge(code_verifier)
    return hmac.compare_digest(expected, code_challenge)


def generate_state() -> str:
    """Opaque anti-CSRF value echoed back in the authorization redirect."""
    return generate_token(32)


def generate_nonce() -> str:
    """Random value bound into the ID token."""
    return generate_token(32)

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
Bounded HTTP reads for IdP and backend calls.
"""

import json
from typing import Any

import httpx

from coreason_session.exceptions import OversizedResponseError

MAX_RESPONSE_BYTES = 1_000_000


async def safe_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    params: dict[str, str] | None = None,
    data: dict[str, str] | None = None,
    json_body: Any | None = None,
    headers: dict[str, str] | None = None,
    max_bytes: int = MAX_RESPONSE_BYTES,
) -> tuple[int, bytes]:
    """
    Performs a request and reads the body with a size cap.

    Non-2xx statuses are returned, not raised: OAuth endpoints report errors in 4xx bodies.

    Returns:
        tuple[int, bytes]: The status code and the raw body.

    Raises:
        httpx.HTTPError: On transport failures and timeouts.
        OversizedResponseError: If the body exceeds max_bytes.
    """
    async with client.stream(
        method, url, params=params, data=data, json=json_body, headers=headers, follow_redirects=True
    ) as response:
        content_length = response.headers.get("Content-Length")
        if content_length:
            try:
                if int(content_length) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} too large ({content_length} bytes)")
            except ValueError:
                pass

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > max_bytes:
                raise OversizedResponseError(f"Response from {url} too large")

        return response.status_code, bytes(content)


def parse_json(content: bytes) -> Any:
    """
    Decodes a JSON body.

    Raises:
        ValueError: If the body is not valid JSON.
    """
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid JSON body: {e}") from e


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300

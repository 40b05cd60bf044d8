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
ScanSubmitter component for posting decoded QR payloads to the backend.
"""

from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from coreason_session.exceptions import CoreasonSessionError, OversizedResponseError, SubmissionFailedError
from coreason_session.manager import SessionManager
from coreason_session.transport import safe_fetch
from coreason_session.utils.logger import logger


class SubmissionResult(BaseModel):
    """
    Outcome of a payload submission.

    Attributes:
        status_code (int): HTTP status returned by the backend.
        accepted (bool): True only for HTTP 200.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    accepted: bool


class ScanSubmitter:
    """
    Sends scanned payloads as `{"Data": <payload>, "Id": <device id>}` with a bearer token.
    """

    def __init__(self, session: SessionManager, api_url: str | None = None, device_id: str | None = None) -> None:
        """
        Initialize the ScanSubmitter.

        Args:
            session: The session used to obtain fresh access tokens.
            api_url: Backend URL. Defaults to the session configuration.
            device_id: Identifier sent with each payload. Defaults to the session configuration.
        """
        self.session = session
        self.api_url = api_url or session.config.api_url
        self.device_id = device_id or session.config.device_id

    async def submit(self, payload: str) -> SubmissionResult:
        """
        Posts a payload using a fresh access token.

        Raises:
            CoreasonSessionError: If no backend URL is configured.
            NotSignedInError: If there is no session.
            TokenRefreshFailedError: If the expired token could not be refreshed.
            SubmissionFailedError: If the backend could not be reached.
        """
        api_url = self.api_url
        if not api_url:
            raise CoreasonSessionError("No API URL configured for scan submission")

        body: dict[str, Any] = {"Data": payload}
        # If id is empty just send data
        if self.device_id:
            body["Id"] = self.device_id

        async def post(access_token: str) -> SubmissionResult:
            try:
                status_code, _ = await safe_fetch(
                    self.session.client,
                    api_url,
                    method="POST",
                    json_body=body,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except (httpx.HTTPError, OversizedResponseError) as e:
                logger.error(f"Couldn't send data to {api_url}: {e}")
                raise SubmissionFailedError(f"Failed to submit payload: {e}") from e
            return SubmissionResult(status_code=status_code, accepted=status_code == 200)

        result = await self.session.with_fresh_token(post)
        if not result.accepted:
            logger.warning(f"Backend rejected scanned payload: HTTP {result.status_code}")
        return result

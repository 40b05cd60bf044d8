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
Redirect presenters: the interactive surface that shows the provider's sign-in page and
captures the redirect back to the application.
"""

import webbrowser
from typing import Protocol

import anyio

from coreason_session.utils.logger import logger


class RedirectPresenter(Protocol):
    """Protocol for an interactive browser or web-view surface."""

    async def present(self, authorization_url: str, redirect_uri: str) -> str | None:
        """
        Opens the authorization URL and waits for the redirect.

        Args:
            authorization_url: The fully built authorization request URL.
            redirect_uri: The registered redirect URI; the redirect to capture starts with it.

        Returns:
            The captured redirect URL, or None if the user cancelled.
        """
        ...


class ConsoleRedirectPresenter:
    """
    Presenter for terminals: opens the system browser and asks the user to paste the URL the
    browser was redirected to. Custom-scheme redirects are not network reachable, so the
    application cannot capture them itself.
    """

    def __init__(self, open_browser: bool = True) -> None:
        self.open_browser = open_browser

    async def present(self, authorization_url: str, redirect_uri: str) -> str | None:
        print(f"Sign in at:\n\n  {authorization_url}\n")
        if self.open_browser:
            opened = await anyio.to_thread.run_sync(webbrowser.open, authorization_url)
            if not opened:
                logger.debug("No browser available, waiting for manual navigation")

        try:
            answer = await anyio.to_thread.run_sync(
                input, f"Paste the URL starting with {redirect_uri} (leave empty to cancel): "
            )
        except EOFError:
            return None
        answer = answer.strip()
        if not answer:
            return None
        return answer

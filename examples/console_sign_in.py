import asyncio
import contextlib
import os
import sys

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from coreason_session.config import CoreasonSessionConfig
from coreason_session.exceptions import CoreasonSessionError
from coreason_session.manager import SessionManager
from coreason_session.presenter import ConsoleRedirectPresenter
from coreason_session.submission import ScanSubmitter


async def main() -> None:
    """
    Signs in against the public IdentityServer demo, submits one payload, and signs out.

    Settings come from COREASON_SESSION_* environment variables, e.g.
    COREASON_SESSION_ISSUER_URL, COREASON_SESSION_CLIENT_ID, COREASON_SESSION_API_URL.
    """
    config = CoreasonSessionConfig(
        issuer_url=os.getenv("COREASON_SESSION_ISSUER_URL", "https://demo.duendesoftware.com/"),
        client_id=os.getenv("COREASON_SESSION_CLIENT_ID", "interactive.public"),
        scopes=["api"],
    )

    async with SessionManager(config) as session:
        session.store.on_state_change(lambda state: print(f">>> Session changed: {state}"))

        if session.is_logged_in():
            print(">>> Restored session from disk")
        else:
            try:
                await session.login(ConsoleRedirectPresenter())
            except CoreasonSessionError as e:
                print(f">>> Sign-in failed: {e}")
                return

        if config.api_url:
            result = await ScanSubmitter(session).submit("example-payload")
            print(f">>> Submission accepted: {result.accepted} (HTTP {result.status_code})")

        await session.sign_out()


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())

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
Discovery component for resolving an issuer to its provider configuration.
"""

import time
from urllib.parse import urlparse

import anyio
import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from coreason_session.exceptions import DiscoveryFailedError, InvalidIssuerUrlError, OversizedResponseError
from coreason_session.models import ProviderConfiguration
from coreason_session.transport import is_success, parse_json, safe_fetch
from coreason_session.utils.logger import logger

tracer = trace.get_tracer(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url_for(issuer_url: str) -> str:
    """
    Builds the well-known metadata URL for an issuer.

    Raises:
        InvalidIssuerUrlError: If the issuer is not an absolute http(s) URL.
    """
    try:
        parsed = urlparse(issuer_url.strip())
    except ValueError as e:
        raise InvalidIssuerUrlError(f"Invalid issuer URL {issuer_url!r}: {e}") from e

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidIssuerUrlError(f"Invalid issuer URL {issuer_url!r}: expected an absolute http(s) URL")

    return issuer_url.strip().rstrip("/") + WELL_KNOWN_PATH


class DiscoveryClient:
    """
    Fetches and caches provider configurations, one per issuer.

    Attributes:
        cache_ttl (int): The cache time-to-live in seconds.
    """

    def __init__(self, client: httpx.AsyncClient, cache_ttl: int = 3600) -> None:
        """
        Initialize the DiscoveryClient.

        Args:
            client: The async HTTP client to use for requests. Its timeout bounds every fetch.
            cache_ttl: Time-to-live for cached configurations in seconds. Defaults to 3600 (1 hour).
        """
        self.client = client
        self.cache_ttl = cache_ttl
        self._cache: dict[str, tuple[ProviderConfiguration, float]] = {}
        self._lock: anyio.Lock | None = None

    def _cached(self, url: str) -> ProviderConfiguration | None:
        entry = self._cache.get(url)
        if entry is not None and (time.time() - entry[1]) < self.cache_ttl:
            return entry[0]
        return None

    async def _fetch(self, url: str) -> ProviderConfiguration:
        """
        Fetches and validates a discovery document. Not retried; retry policy belongs to the caller.

        Raises:
            DiscoveryFailedError: On transport failure, non-2xx status, or an invalid document.
        """
        with tracer.start_as_current_span("oidc.discover") as span:
            span.set_attribute("oidc.discovery_url", url)
            try:
                status_code, content = await safe_fetch(self.client, url)
                if not is_success(status_code):
                    raise DiscoveryFailedError(f"Discovery document {url} returned HTTP {status_code}")
                config = ProviderConfiguration.model_validate(parse_json(content))
            except DiscoveryFailedError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except (httpx.HTTPError, OversizedResponseError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, "transport"))
                raise DiscoveryFailedError(f"Failed to fetch discovery document from {url}: {e}") from e
            except (ValueError, ValidationError) as e:
                span.set_status(Status(StatusCode.ERROR, "invalid document"))
                raise DiscoveryFailedError(f"Invalid discovery document from {url}: {e}") from e

        return config

    async def discover(self, issuer_url: str) -> ProviderConfiguration:
        """
        Resolves an issuer URL to its provider configuration.

        Args:
            issuer_url: The OIDC issuer (e.g. https://idp.example/).

        Returns:
            ProviderConfiguration: Endpoints advertised by the provider.

        Raises:
            InvalidIssuerUrlError: If the issuer URL cannot be parsed.
            DiscoveryFailedError: If the metadata document cannot be fetched or parsed.
        """
        url = discovery_url_for(issuer_url)

        if self._lock is None:
            self._lock = anyio.Lock()

        cached = self._cached(url)
        if cached is not None:
            return cached

        async with self._lock:
            cached = self._cached(url)
            if cached is not None:
                return cached

            logger.info(f"Retrieving provider configuration from {url}")
            config = await self._fetch(url)
            self._cache[url] = (config, time.time())
            logger.debug(
                f"Discovered authorization_endpoint={config.authorization_endpoint} "
                f"token_endpoint={config.token_endpoint} end_session_endpoint={config.end_session_endpoint}"
            )
            return config

    def invalidate(self, issuer_url: str | None = None) -> None:
        """Drops cached configurations, for one issuer or all of them."""
        if issuer_url is None:
            self._cache.clear()
        else:
            self._cache.pop(discovery_url_for(issuer_url), None)

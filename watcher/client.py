# ============================================================================
# NOMAD API CLIENT
# ============================================================================
# STATUS: Infrastructure - Nomad HTTP API access
# PURPOSE: Blocking queries against the Nomad list endpoints
# CREATED: 13 OCT 2026
# ============================================================================
"""
Nomad API Client

Thin aiohttp client for Nomad blocking queries:

    GET /v1/<endpoint>?index=<last index>&wait=<seconds>s

The request returns when the endpoint's index moves past <last index> or the
wait elapses. The new index is read from the X-Nomad-Index header.

Transient failures (connection errors, timeouts, 5xx) are retried with
exponential backoff capped at max_backoff_seconds. Client errors (4xx, e.g.
a missing ACL token) raise WatchError: retrying would not help.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from core.config import NomadConfig
from core.errors import WatchError

logger = logging.getLogger(__name__)

INDEX_HEADER = "X-Nomad-Index"
TOKEN_HEADER = "X-Nomad-Token"


class NomadClient:
    """Async client for Nomad list endpoints."""

    def __init__(
        self,
        config: NomadConfig,
        session: Optional[aiohttp.ClientSession] = None,
        initial_backoff_seconds: float = 1.0,
    ):
        """
        Initialize client.

        Args:
            config: Nomad connection settings
            session: Optional pre-built session (owned by the caller)
            initial_backoff_seconds: First retry delay after a transient error
        """
        self.config = config
        self._base_url = config.address.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._initial_backoff = initial_backoff_seconds

        # Stats
        self._requests = 0
        self._retries = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            headers = {}
            if self.config.token:
                headers[TOKEN_HEADER] = self.config.token
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=headers)
            self._owns_session = True
        return self._session

    def _params(self, index: int) -> Dict[str, str]:
        params = {"index": str(index), "wait": f"{self.config.wait_seconds}s"}
        if self.config.region:
            params["region"] = self.config.region
        return params

    async def blocking_query(self, endpoint: str, index: int = 0) -> Tuple[Any, int]:
        """
        Run one blocking query, retrying transient failures.

        Args:
            endpoint: API path below /v1 (e.g. "allocations")
            index: Last index seen (0 returns immediately)

        Returns:
            (decoded JSON body, new index)

        Raises:
            WatchError: On a non-retryable response
        """
        url = f"{self._base_url}/v1/{endpoint.lstrip('/')}"
        backoff = self._initial_backoff

        while True:
            self._requests += 1
            try:
                session = await self._get_session()
                async with session.get(url, params=self._params(index)) as response:
                    if response.status == 200:
                        body = await response.json()
                        new_index = int(response.headers.get(INDEX_HEADER, index))
                        return body, new_index

                    text = await response.text()
                    if response.status < 500:
                        raise WatchError(
                            f"Nomad rejected {endpoint} query: "
                            f"status={response.status}, body={text[:500]}",
                            endpoint=endpoint,
                        )
                    logger.warning(
                        f"Nomad {endpoint} query failed: status={response.status}, "
                        f"body={text[:500]}"
                    )

            except asyncio.TimeoutError:
                logger.warning(f"Nomad {endpoint} query timed out")

            except aiohttp.ClientError as e:
                logger.warning(f"Nomad {endpoint} query error: {e}")

            self._retries += 1
            logger.debug(f"Retrying {endpoint} in {backoff:.1f}s")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.config.max_backoff_seconds)

    async def close(self) -> None:
        """Close HTTP session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "NomadClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def stats(self) -> Dict[str, int]:
        return {"requests": self._requests, "retries": self._retries}


__all__ = ["NomadClient", "INDEX_HEADER", "TOKEN_HEADER"]

"""Async HTTP client for the SparkLab API.

Wraps every endpoint a front end needs and adds poll_generation, which re-fetches
a generation until the worker has completed it.

Example:
    >>> async with SparkLabClient.from_settings(ClientSettings()) as client:
    ...     created = await client.create_generation("image_engine_a", "image", "a red fox")
    ...     generation = await client.poll_generation(created["id"])
    ...     print(generation["url"])
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from sparklab.client.settings import ClientSettings

logger = structlog.get_logger()

TERMINAL_STATUSES = frozenset({"success", "failed"})


class SparkLabAPIError(Exception):
    """Error response from the API ({"code", "message"} body)."""

    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{code} ({status_code}): {message}")


class PollTimeoutError(Exception):
    """Generation did not reach a terminal status within the attempt ceiling.

    The generation keeps running server-side; fetching it later returns the result.
    """

    def __init__(self, generation_id: str, attempts: int):
        self.generation_id = generation_id
        self.attempts = attempts
        super().__init__(
            f"Generation {generation_id} is still processing after {attempts} checks. "
            "Please check your history later."
        )


class SparkLabClient:
    """Thin async client over httpx.AsyncClient.

    Responses are returned as decoded JSON dicts with the API's camelCase keys.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        poll_interval_seconds: float = 1.0,
        poll_max_attempts: int = 30,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize client.

        Args:
            base_url: API root, e.g. http://localhost:8000
            access_token: Bearer token from the auth platform (None for public calls)
            poll_interval_seconds: Delay between poll_generation fetches
            poll_max_attempts: Fetches before poll_generation gives up
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport/ASGITransport)
            sleep: Coroutine used to wait between polls
        """
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_max_attempts = poll_max_attempts
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport
        )

    @classmethod
    def from_settings(
        cls, settings: ClientSettings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "SparkLabClient":
        return cls(
            base_url=settings.api_url,
            access_token=settings.access_token or None,
            poll_interval_seconds=settings.poll_interval_seconds,
            poll_max_attempts=settings.poll_max_attempts,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "SparkLabClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and decode the JSON body.

        Raises:
            SparkLabAPIError: Non-2xx response
            httpx.HTTPError: Transport failure
        """
        response = await self._http.request(method, path, **kwargs)
        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        raise SparkLabAPIError(
            status_code=response.status_code,
            code=str(body.get("code") or "HTTP_ERROR"),
            message=str(body.get("message") or response.text[:200]),
        )

    async def create_generation(
        self,
        engine_key: str,
        type: str,
        prompt: str,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Submit a generation. Returns the queued generation."""
        payload: dict[str, Any] = {"engineKey": engine_key, "type": type, "prompt": prompt}
        if params is not None:
            payload["params"] = params
        return await self._request("POST", "/api/generations", json=payload)

    async def get_generation(self, generation_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/generations/{generation_id}")

    async def list_generations(self, limit: int = 20, offset: int = 0) -> dict[str, Any]:
        return await self._request(
            "GET", "/api/generations", params={"limit": limit, "offset": offset}
        )

    async def get_profile(self) -> dict[str, Any]:
        return await self._request("GET", "/api/profile")

    async def upgrade_plan(self) -> dict[str, Any]:
        return await self._request("POST", "/api/profile/upgrade")

    async def list_engines(self) -> list[dict[str, Any]]:
        body = await self._request("GET", "/api/engines")
        return body["engines"]

    async def list_engine_connections(self) -> list[dict[str, Any]]:
        body = await self._request("GET", "/api/engine-connections")
        return body["connections"]

    async def set_engine_connection(self, engine_key: str, status: str) -> dict[str, Any]:
        body = await self._request(
            "POST", "/api/engine-connections", json={"engineKey": engine_key, "status": status}
        )
        return body["connection"]

    async def poll_generation(
        self,
        generation_id: str,
        interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> dict[str, Any]:
        """Fetch a generation until it is terminal.

        A failed fetch (transport error or error response) is logged and counts as
        an attempt; polling continues. Nothing is cancelled server-side on timeout.

        Args:
            generation_id: Generation to watch
            interval_seconds: Override of poll_interval_seconds
            max_attempts: Override of poll_max_attempts

        Returns:
            The generation once its status is success or failed

        Raises:
            PollTimeoutError: Still not terminal after max_attempts fetches
        """
        interval = self.poll_interval_seconds if interval_seconds is None else interval_seconds
        attempts = self.poll_max_attempts if max_attempts is None else max_attempts

        for attempt in range(1, attempts + 1):
            try:
                generation = await self.get_generation(generation_id)
            except (httpx.HTTPError, SparkLabAPIError) as e:
                logger.warning(
                    "client.poll_error",
                    generation_id=generation_id,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                status = generation.get("status")
                logger.debug(
                    "client.poll_tick", generation_id=generation_id, attempt=attempt, status=status
                )
                if status in TERMINAL_STATUSES:
                    return generation

            if attempt < attempts:
                await self._sleep(interval)

        logger.warning("client.poll_timeout", generation_id=generation_id, attempts=attempts)
        raise PollTimeoutError(generation_id, attempts)

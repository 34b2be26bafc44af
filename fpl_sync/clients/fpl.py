"""Async client for the public Fantasy Premier League API.

Resilience:
- tenacity retries transport errors, timeouts, 429 and 5xx responses with
  capped exponential backoff
- a circuit breaker opens after repeated exhausted retries so a dead upstream
  is not hammered by every queued job
- 404 is answered immediately as a not_found IntegrationError and never
  counts against the circuit

Payloads are returned as decoded JSON; validation into pydantic models is
the transformers' job.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

import httpx
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from fpl_sync.config import Settings
from fpl_sync.errors import ErrorKind, IntegrationError
from fpl_sync.monitoring import get_logger

log = get_logger()

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return isinstance(exc, httpx.TransportError)


class FPLClient:
    """Async client for fantasy.premierleague.com/api.

    Example:
        client = FPLClient.from_settings(get_settings())
        bootstrap = await client.get_bootstrap_static()
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str = "https://fantasy.premierleague.com/api",
        timeout: float = 15.0,
        retry_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 30.0,
        circuit_threshold: int = 3,
        circuit_recovery: int = 300,
        user_agent: str | None = None,
        http: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        headers = {"User-Agent": user_agent} if user_agent else {}
        self._http = http or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/", timeout=timeout, headers=headers
        )
        self.retry_attempts = retry_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self._sleep = sleep
        self.circuit = CircuitBreaker(
            failure_threshold=circuit_threshold,
            recovery_timeout=circuit_recovery,
            expected_exception=IntegrationError,
            name="fpl_api",
        )
        self._guarded_request = self.circuit(self._request)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "FPLClient":
        return cls(
            base_url=settings.fpl_api_base_url,
            timeout=settings.fpl_api_timeout,
            retry_attempts=settings.fpl_api_retry_attempts,
            backoff_min=settings.fpl_api_backoff_min,
            backoff_max=settings.fpl_api_backoff_max,
            circuit_threshold=settings.fpl_api_circuit_threshold,
            circuit_recovery=settings.fpl_api_circuit_recovery,
            user_agent=settings.fpl_api_user_agent,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_bootstrap_static(self) -> dict:
        """Events, teams and players of the season."""
        return await self._get("bootstrap-static/")

    async def get_fixtures(self, event_id: int | None = None) -> list[dict]:
        params = {"event": event_id} if event_id is not None else None
        return await self._get("fixtures/", params=params)

    async def get_event_live(self, event_id: int) -> dict:
        return await self._get(f"event/{event_id}/live/")

    async def get_classic_standings(self, league_id: int, page: int = 1) -> dict:
        return await self._get(f"leagues-classic/{league_id}/standings/", params={"page_standings": page})

    async def get_entry_event_picks(self, entry_id: int, event_id: int) -> dict:
        return await self._get(f"entry/{entry_id}/event/{event_id}/picks/")

    async def _get(self, path: str, params: dict | None = None) -> Any:
        """GET a path through the circuit breaker and decode the JSON body.

        Raises:
            IntegrationError: kind NOT_FOUND on 404, INTEGRATION otherwise
        """
        start_time = time.perf_counter()
        try:
            response = await self._guarded_request(path, params)
        except CircuitBreakerError as e:
            log.warning("fpl_api_circuit_open", path=path, failures=self.circuit.failure_count)
            raise IntegrationError(
                ErrorKind.INTEGRATION,
                f"FPL API circuit open, skipping {path}",
                details={"path": path, "circuit": "open"},
                cause=e,
            ) from e

        if response.status_code == 404:
            raise IntegrationError(
                ErrorKind.NOT_FOUND,
                f"FPL API resource not found: {path}",
                details={"path": path, "status_code": 404},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise IntegrationError(
                ErrorKind.INTEGRATION,
                f"FPL API returned invalid JSON for {path}",
                details={"path": path, "status_code": response.status_code},
                cause=e,
            ) from e

        log.debug(
            "fpl_api_request_completed",
            path=path,
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return data

    async def _request(self, path: str, params: dict | None) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._http.get(path, params=params)
                    if response.status_code in RETRYABLE_STATUS:
                        response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.error("fpl_api_request_failed", path=path, status_code=status, attempts=self.retry_attempts)
            raise IntegrationError(
                ErrorKind.INTEGRATION,
                f"FPL API returned {status} for {path}",
                details={"path": path, "status_code": status},
                cause=e,
            ) from e
        except httpx.TransportError as e:
            log.error("fpl_api_request_failed", path=path, error=str(e), error_type=type(e).__name__)
            raise IntegrationError(
                ErrorKind.INTEGRATION,
                f"FPL API unreachable for {path}",
                details={"path": path},
                cause=e,
            ) from e

        if response.is_error and response.status_code != 404:
            raise IntegrationError(
                ErrorKind.INTEGRATION,
                f"FPL API returned {response.status_code} for {path}",
                details={"path": path, "status_code": response.status_code},
            )
        return response

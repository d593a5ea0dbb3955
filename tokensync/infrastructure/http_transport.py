"""HTTP Push Transport — delivers register/unregister requests with retry, backoff, and error mapping.

Invariants:
    - send() returns a fresh nonzero request id immediately; the result arrives later
      through on_result on the same event loop
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connection, timeout, undecodable body): max_retries retries with backoff
    - Client errors (other 4xx): immediate failure, no retry
    - Every failure is delivered as TransportError, including unexpected ones:
      on_result is called exactly once per send(); a reply of {"ok": true} is delivered as its bool

Design Decisions:
    - Retry policy lives here, not in the manager: the reconciliation loop only sees
      the final outcome of each request
    - ±25% jitter on backoff: prevents thundering herd after server restarts
    - Key bytes travel base64-encoded inside the JSON body
"""

import asyncio
import base64
import itertools
import logging
import random

import httpx

from tokensync.core.errors import ErrorContext, TransportError
from tokensync.core.remote_requests import DeviceRequest, RegisterDeviceRequest
from tokensync.core.repository_protocols import ResultCallback

logger = logging.getLogger(__name__)

_NETWORK_ERROR_CODE = 500


class HttpPushTransport:
    """PushTransport over JSON-over-HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
        client: httpx.AsyncClient | None = None,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._request_ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()

    def send(self, request: DeviceRequest, on_result: ResultCallback) -> int:
        request_id = next(self._request_ids)
        task = asyncio.get_running_loop().create_task(
            self._deliver(request_id, request, on_result),
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request_id

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.client.aclose()

    async def _deliver(
        self, request_id: int, request: DeviceRequest, on_result: ResultCallback,
    ) -> None:
        context = ErrorContext(
            platform_kind=request.platform_kind.value, request_id=request_id,
        )
        result: bool | Exception
        try:
            result = await self.post(request, context)
        except TransportError as e:
            result = e
        except Exception as e:
            logger.error(
                f"Unexpected push transport error: {e}", exc_info=True,
                extra={
                    "platform_kind": context.platform_kind,
                    "request_id": request_id,
                },
            )
            result = TransportError(str(e), _NETWORK_ERROR_CODE, context=context)
        on_result(request_id, result)

    async def post(self, request: DeviceRequest, context: ErrorContext) -> bool:
        """POST with automatic retry on transient failures."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post(
                    f"/{request.method}", json=encode_request(request),
                )
            except httpx.HTTPError as e:
                await self._handle_transient_error(
                    f"{type(e).__name__}: {e}", attempt, context,
                )
                continue

            if response.status_code == 429:
                await self._handle_rate_limit(response, attempt, context)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt, context,
                )
                continue

            logger.info(
                f"{request.method} answered",
                extra={
                    "attempt": attempt + 1,
                    "platform_kind": context.platform_kind,
                    "request_id": context.request_id,
                },
            )
            return parse_reply(response, context)
        raise TransportError("Retries exhausted", _NETWORK_ERROR_CODE, context=context)

    async def _handle_rate_limit(
        self, response: httpx.Response, attempt: int, context: ErrorContext,
    ) -> None:
        """Handle rate limit with retry or raise."""
        retry_after_ms = _extract_retry_after(response)
        if attempt >= self.max_retries:
            context.retry_after_ms = retry_after_ms
            raise TransportError(
                "Rate limit exceeded after retries", 429,
                retryable=True, context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, description: str, attempt: int, context: ErrorContext,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise TransportError(
                f"Transient failure after {self.max_retries} retries: {description}",
                _NETWORK_ERROR_CODE, retryable=True, context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Transient error, retry after {delay}ms: {description}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


def encode_request(request: DeviceRequest) -> dict:
    body = {
        "token_type": request.platform_kind.value,
        "token": request.token,
        "other_uids": list(request.other_account_ids),
    }
    if isinstance(request, RegisterDeviceRequest):
        body["app_sandbox"] = request.is_sandboxed
        body["secret"] = base64.b64encode(request.key_bytes).decode("ascii")
    return body


def parse_reply(response: httpx.Response, context: ErrorContext) -> bool:
    """Map a non-transient reply to its bool result or a TransportError."""
    try:
        body = response.json()
    except ValueError:
        raise TransportError(
            "Malformed reply from push server", response.status_code,
            context=context,
        )
    if not isinstance(body, dict):
        raise TransportError(
            "Malformed reply from push server", response.status_code,
            context=context,
        )
    if body.get("ok"):
        return bool(body.get("result"))
    raise TransportError(
        str(body.get("description", "Request rejected")),
        _error_code(body, response.status_code),
        context=context,
    )


def _error_code(body: dict, default: int) -> int:
    """Numeric error_code from the reply, else the HTTP status."""
    try:
        return int(body.get("error_code", default))
    except (TypeError, ValueError):
        return default


def _extract_retry_after(response: httpx.Response) -> int | None:
    """Retry-After header in milliseconds, when it is a plain number of seconds."""
    val = response.headers.get("retry-after")
    if val and val.isdigit():
        return int(val) * 1000
    return None

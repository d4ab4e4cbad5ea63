"""Resilient catalog fetch, expressed as an explicit state machine.

States::

    ATTEMPT -> SUCCESS | AUTH_EXPIRED | TRANSIENT_FAILURE
    AUTH_EXPIRED -> RETRY            (after a token refresh, successful or not)
    TRANSIENT_FAILURE -> RETRY
    RETRY -> ATTEMPT | EXHAUSTED

Attempts are strictly sequential. Every transition is mirrored to the
integration log sink so a sync can be reconstructed from the log alone.
The delay function is injected so tests never really sleep.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..stores.log_sink import LogSink
from ..utils.exceptions import FetchCancelledError, FetchExhaustedError

RESPONSE_TEXT_LIMIT = 500


class FetchState(str, Enum):
    ATTEMPT = "attempt"
    SUCCESS = "success"
    AUTH_EXPIRED = "auth_expired"
    TRANSIENT_FAILURE = "transient_failure"
    RETRY = "retry"
    EXHAUSTED = "exhausted"


def classify_response(status_code: int) -> FetchState:
    """Map an HTTP status to the state it leads to."""
    if 200 <= status_code < 300:
        return FetchState.SUCCESS
    if status_code == 401:
        return FetchState.AUTH_EXPIRED
    return FetchState.TRANSIENT_FAILURE


def next_after_retry(attempt: int, max_attempts: int) -> FetchState:
    """Decide whether another attempt is allowed."""
    if attempt >= max_attempts:
        return FetchState.EXHAUSTED
    return FetchState.ATTEMPT


def backoff_delay(attempt: int, base: float = 0.1, ceiling: float = 30.0) -> float:
    """Seconds to wait after ``attempt``: ``min(ceiling, 2**attempt * base)``."""
    return min(ceiling, (2 ** attempt) * base)


@dataclass
class FetchContext:
    """Mutable state of one fetch invocation."""

    shop_id: str
    adapter: str
    max_attempts: int
    attempt: int = 1
    response: Optional[httpx.Response] = None
    last_error: Optional[BaseException] = None
    last_status: Optional[int] = None
    result: Optional[List[Any]] = None
    trace: List[FetchState] = field(default_factory=list)

    def metadata(self, **extra) -> Dict[str, Any]:
        data: Dict[str, Any] = {"attempt": self.attempt}
        data.update(extra)
        return data


RequestFn = Callable[[int], Awaitable[httpx.Response]]
RefreshFn = Callable[[str], Awaitable[Any]]
ParseFn = Callable[[httpx.Response], List[Any]]


class ResilientFetch:
    """Drive one catalog fetch through the retry/refresh protocol."""

    def __init__(
        self,
        shop_id: str,
        adapter_name: str,
        request: RequestFn,
        refresh: RefreshFn,
        parse: ParseFn,
        log_sink: LogSink,
        max_attempts: int = 10,
        backoff: Optional[Callable[[int], float]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """
        Args:
            request: Issues the listing request for the given attempt number.
                It must read the shop's current access token itself.
            refresh: Refreshes the shop's access token; raises on failure.
            parse: Turns a 2xx response into normalized products.
            max_attempts: Upper bound on requests issued.
            backoff: Delay (seconds) after a failed attempt number.
            sleep: Awaitable delay function.
            cancel_event: When set, the fetch stops before the next attempt
                or during a backoff wait.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.shop_id = shop_id
        self.adapter_name = adapter_name
        self.request = request
        self.refresh = refresh
        self.parse = parse
        self.log_sink = log_sink
        self.max_attempts = max_attempts
        self.backoff = backoff or backoff_delay
        self.sleep = sleep
        self.cancel_event = cancel_event

        self._handlers = {
            FetchState.ATTEMPT: self._on_attempt,
            FetchState.SUCCESS: self._on_success,
            FetchState.AUTH_EXPIRED: self._on_auth_expired,
            FetchState.TRANSIENT_FAILURE: self._on_transient_failure,
            FetchState.RETRY: self._on_retry,
            FetchState.EXHAUSTED: self._on_exhausted,
        }
        self.context: Optional[FetchContext] = None

    def _log(self, level: str, message: str, metadata: Dict[str, Any]):
        self.log_sink.log(self.shop_id, self.adapter_name, level, message, metadata)

    async def run(self) -> List[Any]:
        """
        Fetch and normalize the catalog.

        Raises:
            FetchExhaustedError: When every attempt failed.
            FetchCancelledError: When ``cancel_event`` was set.
        """
        ctx = FetchContext(shop_id=self.shop_id, adapter=self.adapter_name, max_attempts=self.max_attempts)
        self.context = ctx

        state: Optional[FetchState] = FetchState.ATTEMPT
        while state is not None:
            ctx.trace.append(state)
            state = await self._handlers[state](ctx)

        return ctx.result

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _on_attempt(self, ctx: FetchContext) -> FetchState:
        self._check_cancelled(ctx)
        ctx.response = None
        self._log("info", f"attempt {ctx.attempt}: requesting products", ctx.metadata(state=FetchState.ATTEMPT.value))

        try:
            ctx.response = await self.request(ctx.attempt)
        except Exception as e:
            ctx.last_error = e
            ctx.last_status = None
            return FetchState.TRANSIENT_FAILURE

        ctx.last_status = ctx.response.status_code
        return classify_response(ctx.response.status_code)

    async def _on_success(self, ctx: FetchContext) -> Optional[FetchState]:
        try:
            products = self.parse(ctx.response)
        except Exception as e:
            ctx.last_error = e
            return FetchState.TRANSIENT_FAILURE

        ctx.result = products
        self._log(
            "info",
            f"request succeeded on attempt {ctx.attempt}",
            ctx.metadata(state=FetchState.SUCCESS.value, count=len(products)),
        )
        return None

    async def _on_auth_expired(self, ctx: FetchContext) -> FetchState:
        self._log(
            "warn",
            f"access token rejected on attempt {ctx.attempt}, refreshing",
            ctx.metadata(state=FetchState.AUTH_EXPIRED.value, status=401, text=_response_text(ctx.response)),
        )
        try:
            await self.refresh(self.shop_id)
        except Exception as e:
            ctx.last_error = e
            self._log(
                "warn",
                f"refresh attempt failed: {str(e)}",
                ctx.metadata(state=FetchState.AUTH_EXPIRED.value),
            )
        else:
            ctx.last_error = None
            self._log(
                "info",
                f"refresh succeeded on attempt {ctx.attempt}",
                ctx.metadata(state=FetchState.AUTH_EXPIRED.value),
            )
        return FetchState.RETRY

    async def _on_transient_failure(self, ctx: FetchContext) -> FetchState:
        response = ctx.response
        if response is not None and not (200 <= response.status_code < 300):
            text = _response_text(response)
            ctx.last_error = RuntimeError(f"{self.adapter_name} API error: {response.status_code} {text}")
            self._log(
                "warn",
                f"request failed: {response.status_code}",
                ctx.metadata(state=FetchState.TRANSIENT_FAILURE.value, status=response.status_code, text=text),
            )
        else:
            self._log(
                "error",
                f"request error: {str(ctx.last_error)}",
                ctx.metadata(state=FetchState.TRANSIENT_FAILURE.value, error_type=type(ctx.last_error).__name__),
            )
        return FetchState.RETRY

    async def _on_retry(self, ctx: FetchContext) -> FetchState:
        next_state = next_after_retry(ctx.attempt, ctx.max_attempts)
        if next_state is FetchState.EXHAUSTED:
            return next_state

        delay = self.backoff(ctx.attempt)
        self._log(
            "debug",
            f"backing off {delay:.2f}s before attempt {ctx.attempt + 1}",
            ctx.metadata(state=FetchState.RETRY.value, delay=delay),
        )
        await self._wait(ctx, delay)
        ctx.attempt += 1
        return FetchState.ATTEMPT

    async def _on_exhausted(self, ctx: FetchContext) -> None:
        cause = str(ctx.last_error) if ctx.last_error else f"last status {ctx.last_status}"
        self._log(
            "error",
            f"exhausted {ctx.max_attempts} attempts",
            ctx.metadata(state=FetchState.EXHAUSTED.value, error=cause, status=ctx.last_status),
        )
        raise FetchExhaustedError(
            f"{self.adapter_name}: no success after {ctx.max_attempts} attempts ({cause})",
            attempts=ctx.attempt,
            last_error=ctx.last_error,
            details={"shop_id": self.shop_id, "status": ctx.last_status},
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _check_cancelled(self, ctx: FetchContext):
        if self.cancel_event is not None and self.cancel_event.is_set():
            self._log("warn", f"fetch cancelled before attempt {ctx.attempt}", ctx.metadata(state="cancelled"))
            raise FetchCancelledError(
                f"{self.adapter_name}: fetch cancelled",
                details={"shop_id": self.shop_id, "attempt": ctx.attempt},
            )

    async def _wait(self, ctx: FetchContext, delay: float):
        """Sleep for ``delay`` unless the cancel event fires first."""
        if self.cancel_event is None:
            await self.sleep(delay)
            return

        sleeper = asyncio.ensure_future(self.sleep(delay))
        watcher = asyncio.ensure_future(self.cancel_event.wait())
        done, pending = await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._check_cancelled(ctx)


def _response_text(response: Optional[httpx.Response]) -> Optional[str]:
    if response is None:
        return None
    try:
        return response.text[:RESPONSE_TEXT_LIMIT]
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return None

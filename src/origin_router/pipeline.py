"""Request execution against the selected backend with retry and re-selection."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import httpx
from tenacity import RetryCallState, retry_if_exception_type

from origin_router.clock import Clock
from origin_router.errors import NoAvailableBackendError
from origin_router.interceptors import ErrorInterceptorChain, InterceptorChain
from origin_router.logging import get_logger, log_error, log_warning
from origin_router.metrics import MetricsAggregator
from origin_router.prober import OutcomeRecorder
from origin_router.retry import RetryBackoffPolicy, build_exponential_retrying
from origin_router.selector import Selector
from origin_router.settings import RouterSettings
from origin_router.transport import RequestOptions, Transport

_logger = get_logger(__name__)


class _RetryableAttemptError(Exception):
    """Carry a processed failure from one attempt to the retry loop."""

    def __init__(self, error: BaseException, backend_url: str) -> None:
        super().__init__(str(error))
        self.error = error
        self.backend_url = backend_url


def normalize_path(path: str) -> str:
    if path and not path.startswith("/"):
        return f"/{path}"
    return path


def retry_policy_for(settings: RouterSettings) -> RetryBackoffPolicy:
    return RetryBackoffPolicy(
        retries=settings.max_retry_attempts,
        initial_seconds=settings.initial_retry_delay_ms / 1000.0,
        max_seconds=settings.max_retry_delay_ms / 1000.0,
    )


class RequestPipeline:
    """Send application requests through the current selection.

    Each request runs an attempt loop. A failed attempt is recorded, passed
    through the error interceptors and retried after capped exponential
    backoff against whichever backend is selected at retry time. A failure
    that trips the selected backend reselects immediately. The
    router-wide retry counter forces a probe pass and re-selection once it
    reaches ``max_retry_attempts``; a successful selection resets it.
    """

    def __init__(
        self,
        *,
        selector: Selector,
        recorder: OutcomeRecorder,
        metrics: MetricsAggregator,
        transport: Transport,
        clock: Clock,
        settings: RouterSettings,
        probe_all: Callable[[], Awaitable[object]],
        request_interceptors: InterceptorChain[RequestOptions],
        response_interceptors: InterceptorChain[httpx.Response],
        error_interceptors: ErrorInterceptorChain,
    ) -> None:
        self._selector = selector
        self._recorder = recorder
        self._metrics = metrics
        self._transport = transport
        self._clock = clock
        self.settings = settings
        self._probe_all = probe_all
        self._request_interceptors = request_interceptors
        self._response_interceptors = response_interceptors
        self._error_interceptors = error_interceptors
        self.consecutive_retries = 0

    def reset_retry_counter(self) -> None:
        self.consecutive_retries = 0

    async def execute(
        self,
        path: str,
        options: RequestOptions | None = None,
    ) -> httpx.Response:
        """Execute one application request.

        Raises:
            NoAvailableBackendError: If no backend is eligible.
            InterceptorError: If a request or response interceptor fails.
            Exception: The last (error-interceptor processed) failure once
                the retry budget is exhausted.
        """
        path = normalize_path(path)
        options = RequestOptions() if options is None else options
        policy = retry_policy_for(self.settings)
        retrying = build_exponential_retrying(
            retry=retry_if_exception_type(_RetryableAttemptError),
            policy=policy,
            sleep=self._clock.sleep,
            before_sleep=self._log_retry,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempt_index = attempt.retry_state.attempt_number - 1
                    return await self._attempt(path, options, attempt_index, policy)
        except _RetryableAttemptError as exc:
            raise exc.error

        raise RuntimeError("Request retry loop exited unexpectedly.")

    async def _attempt(
        self,
        path: str,
        options: RequestOptions,
        attempt_index: int,
        policy: RetryBackoffPolicy,
    ) -> httpx.Response:
        backend_url = await self._current_backend(attempt_index)
        url = f"{backend_url}{path}"
        merged = self.settings.request_defaults().merged(options)
        final_options = await self._request_interceptors.apply(merged)

        start = self._clock.monotonic()
        try:
            response = await self._transport.send(url, final_options)
        except Exception as exc:
            latency_ms = self._elapsed_ms(start)
            message = str(exc) or exc.__class__.__name__
            tripped = self._recorder.record_outcome(
                backend_url, False, latency_ms, message
            )
            if tripped and self._selector.selected == backend_url:
                self._selector.reselect()
            self._metrics.record(backend_url, path, False, latency_ms)
            processed = await self._error_interceptors.apply(exc)

            if attempt_index < policy.retries:
                # The next attempt targets whichever backend is selected by then.
                await self._prepare_retry(backend_url, policy)
                raise _RetryableAttemptError(processed, backend_url) from exc

            log_error(
                _logger,
                "request.failed",
                url=url,
                attempts=attempt_index + 1,
                error=message,
            )
            raise processed

        latency_ms = self._elapsed_ms(start)
        self._recorder.record_outcome(backend_url, True, latency_ms)
        self._metrics.record(backend_url, path, True, latency_ms)
        return await self._response_interceptors.apply(response)

    async def _current_backend(self, attempt_index: int) -> str:
        if self._selector.selected is None and attempt_index == 0:
            await self._probe_all()
        selected = self._selector.selected
        if selected is None:
            raise NoAvailableBackendError()
        return selected

    async def _prepare_retry(
        self, backend_url: str, policy: RetryBackoffPolicy
    ) -> None:
        self.consecutive_retries += 1
        if self.consecutive_retries < policy.retries:
            return
        log_warning(
            _logger,
            "request.reselecting",
            url=backend_url,
            consecutive_retries=self.consecutive_retries,
        )
        await self._probe_all()

    def _elapsed_ms(self, start: float) -> float:
        return max(self._clock.monotonic() - start, 0.0) * 1000.0

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        next_action = retry_state.next_action
        log_warning(
            _logger,
            "request.retrying",
            attempt=retry_state.attempt_number,
            backend=getattr(error, "backend_url", None),
            error=str(error) if error is not None else None,
            delay_seconds=next_action.sleep if next_action is not None else None,
        )

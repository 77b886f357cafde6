"""Ordered transform chains applied to request options, responses and errors.

Every interceptor receives the value produced by the previous one and must
return a value of the same kind; it may be sync or async. Returning ``None``
is an error rather than a silent pass-through.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar, cast

import httpx

from origin_router.errors import InterceptorError
from origin_router.transport import RequestOptions

T = TypeVar("T")

Interceptor = Callable[[T], T | Awaitable[T]]
RequestInterceptor = Interceptor[RequestOptions]
ResponseInterceptor = Interceptor[httpx.Response]
ErrorInterceptor = Interceptor[BaseException]


def _interceptor_name(interceptor: Callable[..., object]) -> str:
    name = getattr(interceptor, "__qualname__", None)
    if name is None:
        name = getattr(interceptor, "__name__", None)
    if name is None:
        name = interceptor.__class__.__qualname__
    return str(name)


async def _resolve(result: T | Awaitable[T]) -> T:
    if inspect.isawaitable(result):
        return await cast(Awaitable[T], result)
    return result


class InterceptorChain(Generic[T]):
    """Left-to-right chain of transforms over values of type ``T``."""

    def __init__(self, name: str, value_type: type | tuple[type, ...]) -> None:
        self.name = name
        self._value_type = value_type
        self._interceptors: list[Interceptor[T]] = []

    def __len__(self) -> int:
        return len(self._interceptors)

    def add(self, interceptor: Interceptor[T]) -> None:
        if not callable(interceptor):
            raise TypeError(f"{self.name} interceptor must be callable")
        self._interceptors.append(interceptor)

    def clear(self) -> None:
        self._interceptors.clear()

    async def apply(self, value: T) -> T:
        """Run every interceptor in registration order.

        Raises:
            InterceptorError: If an interceptor raises or returns a value
                that is not a ``value_type`` instance.
        """
        current = value
        for interceptor in tuple(self._interceptors):
            name = _interceptor_name(interceptor)
            try:
                result = await _resolve(interceptor(current))
            except Exception as exc:
                raise InterceptorError(
                    self.name, name, f"{exc.__class__.__name__}: {exc}"
                ) from exc
            current = self._check(name, result)
        return current

    def _check(self, name: str, result: object) -> T:
        if result is None:
            raise InterceptorError(self.name, name, "returned None")
        if not isinstance(result, self._value_type):
            raise InterceptorError(
                self.name,
                name,
                f"returned {result.__class__.__name__}",
            )
        return cast(T, result)


class ErrorInterceptorChain(InterceptorChain[BaseException]):
    """Error chain where a raising member replaces the in-flight error.

    The first interceptor that raises (or returns an unusable value) ends
    the chain; its exception becomes the result instead of propagating.
    """

    def __init__(self) -> None:
        super().__init__("error", BaseException)

    async def apply(self, value: BaseException) -> BaseException:
        current = value
        for interceptor in tuple(self._interceptors):
            name = _interceptor_name(interceptor)
            try:
                result = await _resolve(interceptor(current))
                current = self._check(name, result)
            except InterceptorError as exc:
                exc.__cause__ = current
                return exc
            except Exception as exc:
                return exc
        return current


def request_chain() -> InterceptorChain[RequestOptions]:
    return InterceptorChain("request", RequestOptions)


def response_chain() -> InterceptorChain[httpx.Response]:
    return InterceptorChain("response", httpx.Response)

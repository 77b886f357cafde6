from __future__ import annotations

import httpx
import pytest

from origin_router.errors import InterceptorError
from origin_router.interceptors import (
    ErrorInterceptorChain,
    request_chain,
    response_chain,
)
from origin_router.transport import RequestOptions

pytestmark = pytest.mark.asyncio


async def test_request_chain_runs_in_registration_order() -> None:
    chain = request_chain()
    seen: list[str] = []

    def _first(options: RequestOptions) -> RequestOptions:
        seen.append("first")
        return options.merged(RequestOptions(headers={"X-Step": "1"}))

    async def _second(options: RequestOptions) -> RequestOptions:
        seen.append("second")
        assert options.headers["X-Step"] == "1"
        return options.merged(RequestOptions(headers={"X-Step": "2"}))

    chain.add(_first)
    chain.add(_second)

    result = await chain.apply(RequestOptions())

    assert seen == ["first", "second"]
    assert result.headers["X-Step"] == "2"
    assert len(chain) == 2


async def test_empty_chain_returns_value_unchanged() -> None:
    options = RequestOptions(method="GET")

    assert await request_chain().apply(options) is options


async def test_returning_none_is_an_error() -> None:
    chain = request_chain()
    chain.add(lambda options: None)

    with pytest.raises(InterceptorError, match="returned None") as exc_info:
        await chain.apply(RequestOptions())

    assert exc_info.value.chain == "request"


async def test_returning_wrong_type_is_an_error() -> None:
    chain = response_chain()
    chain.add(lambda response: {"status": response.status_code})

    with pytest.raises(InterceptorError, match="returned dict"):
        await chain.apply(httpx.Response(200))


async def test_raising_interceptor_is_wrapped() -> None:
    chain = request_chain()

    def _explode(options: RequestOptions) -> RequestOptions:
        raise RuntimeError("boom")

    chain.add(_explode)

    with pytest.raises(InterceptorError) as exc_info:
        await chain.apply(RequestOptions())

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert "_explode" in exc_info.value.interceptor


async def test_add_rejects_non_callables() -> None:
    with pytest.raises(TypeError):
        request_chain().add("not callable")  # type: ignore[arg-type]


async def test_clear_removes_interceptors() -> None:
    chain = request_chain()
    chain.add(lambda options: None)

    chain.clear()

    assert len(chain) == 0
    await chain.apply(RequestOptions())


async def test_error_chain_transforms_error() -> None:
    chain = ErrorInterceptorChain()
    original = ValueError("upstream")
    chain.add(lambda error: LookupError(f"mapped: {error}"))

    result = await chain.apply(original)

    assert isinstance(result, LookupError)
    assert str(result) == "mapped: upstream"


async def test_error_chain_raising_member_ends_chain() -> None:
    chain = ErrorInterceptorChain()
    calls: list[str] = []

    async def _raise(error: BaseException) -> BaseException:
        calls.append("raise")
        raise PermissionError("denied")

    def _never(error: BaseException) -> BaseException:
        calls.append("never")
        return error

    chain.add(_raise)
    chain.add(_never)

    result = await chain.apply(ValueError("upstream"))

    assert isinstance(result, PermissionError)
    assert calls == ["raise"]


async def test_error_chain_none_result_becomes_interceptor_error() -> None:
    chain = ErrorInterceptorChain()
    original = ValueError("upstream")
    chain.add(lambda error: None)

    result = await chain.apply(original)

    assert isinstance(result, InterceptorError)
    assert result.__cause__ is original

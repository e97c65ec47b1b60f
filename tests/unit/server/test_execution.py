# tests/unit/server/test_execution.py
import sys
import threading
import time
from unittest.mock import MagicMock

import anyio
import pytest

from toolwire.server.exceptions import HandlerError
from toolwire.server.execution import (
    CancellationToken,
    Failure,
    HandlerExecutor,
    Success,
    request_ctx,
)
from toolwire.server.models import SessionState
from toolwire.server.registry import CapabilityDescriptor
from toolwire.shared.context import RequestContext
from toolwire.types import (
    CONNECTION_CLOSED,
    INTERNAL_ERROR,
    REQUEST_CANCELLED,
    REQUEST_TIMEOUT,
    RESOURCE_EXHAUSTED,
    RESOURCE_NOT_FOUND,
    ServerCapabilities,
)

STATE = SessionState(server_name="unit-test-server", server_version="0.1.0", capabilities=ServerCapabilities())


def make_context(target: str = "t", token: CancellationToken | None = None, session=None) -> RequestContext:
    return RequestContext(
        request_id=1,
        meta=None,
        session=session,
        lifespan_context={},
        state=STATE,
        category="tool",
        target=target,
        cancellation=token or CancellationToken(),
    )


def make_descriptor(fn, name: str = "t") -> CapabilityDescriptor:
    return CapabilityDescriptor.from_function(fn, name=name)


async def wait_until(predicate, timeout: float = 2.0):
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.005)


@pytest.mark.anyio
async def test_async_and_sync_handlers_succeed():
    executor = HandlerExecutor()

    async def async_handler(ctx, args):
        return f"hello {args['name']}"

    def sync_handler(ctx, args):
        return args["name"].upper()

    first = await executor.invoke(make_descriptor(async_handler), {"name": "ada"}, make_context())
    second = await executor.invoke(make_descriptor(sync_handler), {"name": "ada"}, make_context())

    assert first == Success("hello ada")
    assert second == Success("ADA")
    assert executor.active == 0


@pytest.mark.anyio
async def test_handler_sees_request_context():
    executor = HandlerExecutor()
    seen = {}

    async def handler(ctx, args):
        seen["ctx"] = request_ctx.get()
        return None

    context = make_context()
    await executor.invoke(make_descriptor(handler), {}, context)

    assert seen["ctx"] is context
    with pytest.raises(LookupError):
        request_ctx.get()


@pytest.mark.anyio
async def test_concurrency_bound_rejects_after_admission_timeout():
    """
    With N slots busy, call N+1 fails with RESOURCE_EXHAUSTED after about the
    admission timeout instead of waiting forever.
    """
    executor = HandlerExecutor(max_concurrency=2, admission_timeout=0.1, call_timeout=None)
    release = anyio.Event()

    async def blocking(ctx, args):
        await release.wait()
        return "done"

    descriptor = make_descriptor(blocking)
    results = []

    async def run_one():
        results.append(await executor.invoke(descriptor, {}, make_context()))

    async with anyio.create_task_group() as tg:
        tg.start_soon(run_one)
        tg.start_soon(run_one)
        await wait_until(lambda: executor.active == 2)

        started = anyio.current_time()
        rejected = await executor.invoke(descriptor, {}, make_context())
        elapsed = anyio.current_time() - started

        assert isinstance(rejected, Failure)
        assert rejected.error.code == RESOURCE_EXHAUSTED
        assert rejected.error.data["retryable"] is True
        assert 0.09 <= elapsed < 1.0

        release.set()

    assert results == [Success("done"), Success("done")]
    assert executor.active == 0


@pytest.mark.anyio
async def test_zero_admission_timeout_rejects_immediately():
    executor = HandlerExecutor(max_concurrency=1, admission_timeout=0, call_timeout=None)
    release = anyio.Event()

    async def blocking(ctx, args):
        await release.wait()

    descriptor = make_descriptor(blocking)
    async with anyio.create_task_group() as tg:
        tg.start_soon(executor.invoke, descriptor, {}, make_context())
        await wait_until(lambda: executor.active == 1)

        rejected = await executor.invoke(descriptor, {}, make_context())
        assert isinstance(rejected, Failure)
        assert rejected.error.code == RESOURCE_EXHAUSTED

        release.set()


@pytest.mark.anyio
async def test_cancelling_one_request_does_not_affect_another():
    """
    Two handlers sleeping 5s and 50ms; the 5s one is cancelled at 10ms and the
    50ms one still completes successfully.
    """
    executor = HandlerExecutor(call_timeout=None, cancel_grace=0.1)
    results = {}

    async def sleeper(ctx, args):
        await anyio.sleep(args["seconds"])
        return "slept"

    descriptor = make_descriptor(sleeper)
    slow_token = CancellationToken()

    async def run(key, seconds, token):
        results[key] = await executor.invoke(descriptor, {"seconds": seconds}, make_context(token=token))

    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            tg.start_soon(run, "slow", 5, slow_token)
            tg.start_soon(run, "fast", 0.05, CancellationToken())
            await anyio.sleep(0.01)
            slow_token.cancel()

    assert results["fast"] == Success("slept")
    assert isinstance(results["slow"], Failure)
    assert results["slow"].error.code == REQUEST_CANCELLED
    assert executor.active == 0


@pytest.mark.anyio
async def test_cooperative_handler_observes_timeout():
    executor = HandlerExecutor(call_timeout=0.05, cancel_grace=5)

    async def cooperative(ctx, args):
        await ctx.cancellation.wait()
        ctx.cancellation.raise_if_cancelled()

    with anyio.fail_after(1):
        result = await executor.invoke(make_descriptor(cooperative), {}, make_context())

    assert isinstance(result, Failure)
    assert result.error.code == REQUEST_TIMEOUT


@pytest.mark.anyio
async def test_handler_ignoring_cancellation_is_abandoned(caplog):
    executor = HandlerExecutor(call_timeout=0.05, cancel_grace=0.05)

    async def stubborn(ctx, args):
        await anyio.sleep(30)

    with anyio.fail_after(2):
        result = await executor.invoke(make_descriptor(stubborn, "stubborn"), {}, make_context())

    assert isinstance(result, Failure)
    assert result.error.code == REQUEST_TIMEOUT
    assert executor.active == 0
    assert "ignored cancellation" in caplog.text


@pytest.mark.anyio
async def test_sync_handler_thread_is_abandoned_and_slot_released():
    executor = HandlerExecutor(max_concurrency=1, call_timeout=0.05, cancel_grace=0.05)
    unblock = threading.Event()

    def stuck(ctx, args):
        unblock.wait(5)
        return "late"

    try:
        with anyio.fail_after(2):
            result = await executor.invoke(make_descriptor(stuck), {}, make_context())
        assert isinstance(result, Failure)
        assert result.error.code == REQUEST_TIMEOUT

        # The only slot is free again
        quick = await executor.invoke(make_descriptor(lambda ctx, args: "ok", "quick"), {}, make_context())
        assert quick == Success("ok")
    finally:
        unblock.set()


@pytest.mark.anyio
async def test_unexpected_fault_is_contained():
    executor = HandlerExecutor()

    def broken(ctx, args):
        raise ValueError("boom")

    failed = await executor.invoke(make_descriptor(broken, "broken"), {}, make_context())
    assert isinstance(failed, Failure)
    assert failed.error.code == INTERNAL_ERROR
    assert failed.error.data == {"detail": "boom", "type": "ValueError"}

    # A later unrelated request still works
    ok = await executor.invoke(make_descriptor(lambda ctx, args: time.time() > 0, "ok"), {}, make_context())
    assert ok == Success(True)


@pytest.mark.anyio
async def test_unrequested_cancellation_from_handler_is_contained():
    executor = HandlerExecutor()

    async def stray(ctx, args):
        raise anyio.get_cancelled_exc_class()()

    failed = await executor.invoke(make_descriptor(stray, "stray"), {}, make_context())
    assert isinstance(failed, Failure)
    assert failed.error.code == INTERNAL_ERROR

    ok = await executor.invoke(make_descriptor(lambda ctx, args: "still here", "ok"), {}, make_context())
    assert ok == Success("still here")
    assert executor.active == 0


@pytest.mark.anyio
async def test_sys_exit_in_sync_handler_is_contained():
    executor = HandlerExecutor()

    def quitter(ctx, args):
        sys.exit(2)

    failed = await executor.invoke(make_descriptor(quitter, "quitter"), {}, make_context())
    assert isinstance(failed, Failure)
    assert failed.error.code == INTERNAL_ERROR
    assert failed.error.data == {"detail": "2", "type": "SystemExit"}
    assert executor.active == 0


@pytest.mark.anyio
async def test_handler_error_keeps_its_code():
    executor = HandlerExecutor()

    async def missing(ctx, args):
        raise HandlerError("gone", code=RESOURCE_NOT_FOUND)

    result = await executor.invoke(make_descriptor(missing), {}, make_context())

    assert isinstance(result, Failure)
    assert result.error.code == RESOURCE_NOT_FOUND
    assert result.error.message == "gone"


@pytest.mark.anyio
async def test_closed_session_admits_nothing():
    executor = HandlerExecutor()
    called = []

    result = await executor.invoke(
        make_descriptor(lambda ctx, args: called.append(1)),
        {},
        make_context(session=MagicMock(closed=True)),
    )

    assert isinstance(result, Failure)
    assert result.error.code == CONNECTION_CLOSED
    assert called == []


@pytest.mark.anyio
async def test_already_cancelled_request_never_runs():
    executor = HandlerExecutor()
    token = CancellationToken()
    token.cancel()
    called = []

    result = await executor.invoke(make_descriptor(lambda ctx, args: called.append(1)), {}, make_context(token=token))

    assert isinstance(result, Failure)
    assert result.error.code == REQUEST_CANCELLED
    assert called == []


@pytest.mark.anyio
async def test_cancellation_token_first_reason_wins():
    token = CancellationToken()
    token.cancel("timeout")
    token.cancel("client")

    assert token.cancelled
    assert token.reason == "timeout"

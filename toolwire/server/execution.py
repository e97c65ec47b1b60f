# toolwire/server/execution.py
"""Handler execution.

Every handler call goes through `HandlerExecutor.invoke`, which

1. takes a slot from a capacity limiter, waiting at most the admission timeout;
2. runs the handler with a `CancellationToken` the handler is expected to honour;
3. fires the token when the call timeout elapses and, `cancel_grace` seconds after
   the token fired for any reason, cancels the handler outright;
4. turns whatever the handler did into an `InvocationResult`.

Nothing raised by a handler escapes `invoke`, including `SystemExit` and cancellations
that no enclosing scope requested.
"""

from __future__ import annotations as _annotations

import contextvars
import functools
import inspect
from dataclasses import dataclass
from typing import Any

import anyio
import anyio.to_thread

from toolwire.server.exceptions import (
    ConnectionClosedError,
    RequestCancelledError,
    RequestTimeoutError,
    ResourceExhaustedError,
)
from toolwire.server.registry import CapabilityDescriptor
from toolwire.shared.context import RequestContext
from toolwire.shared.exceptions import ToolwireError
from toolwire.types import INTERNAL_ERROR, ErrorData
from toolwire.utilities.logging import get_logger

logger = get_logger(__name__)

# Set while a handler runs so it can be retrieved via Server.request_context
request_ctx: contextvars.ContextVar[RequestContext[Any]] = contextvars.ContextVar("request_ctx")

CANCEL_REASON_CLIENT = "client"
CANCEL_REASON_TIMEOUT = "timeout"
CANCEL_REASON_SHUTDOWN = "shutdown"


class CancellationToken:
    """Cooperative cancellation signal for one request.

    Handlers poll `cancelled`, await `wait()`, or call `raise_if_cancelled()`.
    Firing is idempotent; the first reason wins.
    """

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = CANCEL_REASON_CLIENT) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError(self._reason)


@dataclass(frozen=True)
class Success:
    """Handler returned normally; `value` is its raw return value."""

    value: Any


@dataclass(frozen=True)
class Failure:
    error: ErrorData


InvocationResult = Success | Failure


class HandlerExecutor:
    def __init__(
        self,
        max_concurrency: int = 16,
        admission_timeout: float = 5.0,
        call_timeout: float | None = 60.0,
        cancel_grace: float = 5.0,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.admission_timeout = admission_timeout
        self.call_timeout = call_timeout or None
        self.cancel_grace = cancel_grace
        self._limiter = anyio.CapacityLimiter(max_concurrency)

    @property
    def active(self) -> int:
        """Number of handler calls currently holding a slot."""
        return int(self._limiter.borrowed_tokens)

    async def invoke(
        self,
        descriptor: CapabilityDescriptor,
        arguments: dict[str, Any],
        context: RequestContext[Any],
    ) -> InvocationResult:
        try:
            await self._admit(context)
        except ToolwireError as err:
            logger.warning("Rejected %s %r: %s", context.category, descriptor.name, err.error.message)
            return Failure(err.error)
        try:
            return await self._run_guarded(descriptor, arguments, context)
        finally:
            self._limiter.release()

    async def _admit(self, context: RequestContext[Any]) -> None:
        """Take a concurrency slot for the current task.

        Raises:
            ConnectionClosedError: the session is gone.
            ResourceExhaustedError: no slot within the admission timeout.
            RequestCancelledError: the request was cancelled while waiting.
        """
        token = context.cancellation
        if _session_closed(context):
            raise ConnectionClosedError()
        token.raise_if_cancelled()

        if self.admission_timeout <= 0:
            try:
                self._limiter.acquire_nowait()
            except anyio.WouldBlock:
                raise ResourceExhaustedError(
                    data={"max_concurrency": self.max_concurrency}
                ) from None
        else:
            acquired = False
            with anyio.move_on_after(self.admission_timeout):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(_cancel_when_fired, token, tg.cancel_scope)
                    await self._limiter.acquire()
                    acquired = True
                    tg.cancel_scope.cancel()
            if not acquired:
                if token.cancelled:
                    raise RequestCancelledError(token.reason)
                raise ResourceExhaustedError(
                    data={"max_concurrency": self.max_concurrency, "admission_timeout": self.admission_timeout}
                )

        if _session_closed(context):
            self._limiter.release()
            raise ConnectionClosedError()

    async def _run_guarded(
        self,
        descriptor: CapabilityDescriptor,
        arguments: dict[str, Any],
        context: RequestContext[Any],
    ) -> InvocationResult:
        token = context.cancellation
        outcome: list[InvocationResult] = []
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._watchdog, token, tg.cancel_scope, descriptor.name)
            outcome.append(await self._call(descriptor, arguments, context))
            tg.cancel_scope.cancel()

        if token.cancelled:
            if token.reason == CANCEL_REASON_TIMEOUT:
                return Failure(RequestTimeoutError(descriptor.name, self.call_timeout or 0).error)
            return Failure(RequestCancelledError(token.reason).error)
        return outcome[0]

    async def _watchdog(self, token: CancellationToken, scope: anyio.CancelScope, target: str) -> None:
        if self.call_timeout is None:
            await token.wait()
        else:
            with anyio.move_on_after(self.call_timeout):
                await token.wait()
            if not token.cancelled:
                logger.warning("Handler %r exceeded call timeout of %ss", target, self.call_timeout)
                token.cancel(CANCEL_REASON_TIMEOUT)
        await anyio.sleep(self.cancel_grace)
        logger.warning("Handler %r ignored cancellation for %ss, abandoning it", target, self.cancel_grace)
        scope.cancel()

    async def _call(
        self,
        descriptor: CapabilityDescriptor,
        arguments: dict[str, Any],
        context: RequestContext[Any],
    ) -> InvocationResult:
        ctx_token = request_ctx.set(context)
        try:
            if descriptor.is_async:
                value = await descriptor.handler(context, arguments)
            else:
                # Worker threads cannot be interrupted; at the hard deadline the thread
                # is abandoned and its slot released.
                value = await anyio.to_thread.run_sync(
                    functools.partial(descriptor.handler, context, arguments),
                    abandon_on_cancel=True,
                )
            if inspect.isawaitable(value):
                value = await value
        except ToolwireError as err:
            logger.info("%s %r failed: %s", context.category, descriptor.name, err.error.message)
            return Failure(err.error)
        except anyio.get_cancelled_exc_class() as err:
            # Only the watchdog or an enclosing scope may cancel the call
            if _scope_cancelled():
                raise
            logger.error("%s %r raised a cancellation nobody requested", context.category, descriptor.name)
            return Failure(_internal_error(descriptor, context, err))
        except Exception as err:
            logger.exception("Error executing %s %r", context.category, descriptor.name)
            return Failure(_internal_error(descriptor, context, err))
        except (SystemExit, KeyboardInterrupt) as err:
            logger.error("%s %r tried to stop the process: %r", context.category, descriptor.name, err)
            return Failure(_internal_error(descriptor, context, err))
        finally:
            request_ctx.reset(ctx_token)
        return Success(value)


def _internal_error(descriptor: CapabilityDescriptor, context: RequestContext[Any], err: BaseException) -> ErrorData:
    return ErrorData(
        code=INTERNAL_ERROR,
        message=f"Error executing {context.category} {descriptor.name}",
        data={"detail": str(err), "type": type(err).__name__},
    )


def _scope_cancelled() -> bool:
    return anyio.current_effective_deadline() <= anyio.current_time()


async def _cancel_when_fired(token: CancellationToken, scope: anyio.CancelScope) -> None:
    await token.wait()
    scope.cancel()


def _session_closed(context: RequestContext[Any]) -> bool:
    return context.session is not None and context.session.closed

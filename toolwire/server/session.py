# toolwire/server/session.py
"""
ServerSession Module

A `ServerSession` owns one client connection. It reads decoded messages from the
transport, answers the initialize handshake itself, delivers cancellation
notifications to the matching in-flight request, and hands every other request to
the server as a `RequestResponder` on `incoming_messages`.

When the transport cannot correlate responses to requests, construct the session
with ``ordered_responses=True``: responses are then written in request-arrival
order, with finished responses buffered until every earlier one has been written.

The ServerSession class is typically used internally by the Server class and should
not be instantiated directly by users.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from enum import Enum
from types import TracebackType
from typing import Any

import anyio
import anyio.lowlevel
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import ValidationError
from typing_extensions import Self

import toolwire.types as types
from toolwire.server.execution import CANCEL_REASON_CLIENT, CANCEL_REASON_SHUTDOWN, CancellationToken
from toolwire.server.formatting import to_jsonrpc
from toolwire.server.models import InitializationOptions
from toolwire.shared.message import ServerMessageMetadata, SessionMessage
from toolwire.utilities.logging import get_logger

logger = get_logger(__name__)


class InitializationState(Enum):
    NotInitialized = 1
    Initializing = 2
    Initialized = 3


class RequestResponder:
    """Handles responding to one request and tracks its lifecycle.

    This class MUST be used as a context manager so the session forgets the request
    once it is done:

    Example:
        with request_responder as resp:
            await resp.respond(result)
    """

    def __init__(
        self,
        request_id: types.RequestId,
        method: str,
        params: dict[str, Any] | None,
        request_meta: types.RequestParams.Meta | None,
        session: ServerSession,
        sequence: int,
        on_complete: Callable[[RequestResponder], Any],
        message_metadata: Any = None,
    ) -> None:
        self.request_id = request_id
        self.method = method
        self.params = params
        self.request_meta = request_meta
        self.sequence = sequence
        self.message_metadata = message_metadata
        self.cancellation = CancellationToken()
        self._session = session
        self._completed = False
        self._on_complete = on_complete
        self._entered = False

    def __enter__(self) -> RequestResponder:
        self._entered = True
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._entered = False
        self._on_complete(self)

    async def respond(self, response: types.ServerResult | types.ErrorData) -> None:
        """Send the response for this request.

        Raises:
            RuntimeError: If not used within a context manager
            AssertionError: If request was already responded to
        """
        if not self._entered:
            raise RuntimeError("RequestResponder must be used as a context manager")
        assert not self._completed, "Request already responded to"
        self._completed = True
        await self._session._send_response(self, response)  # type: ignore[reportPrivateUsage]

    def cancel(self, reason: str = CANCEL_REASON_CLIENT) -> None:
        """Fire this request's cancellation token. Other requests are unaffected."""
        self.cancellation.cancel(reason)

    @property
    def session(self) -> ServerSession:
        return self._session

    @property
    def in_flight(self) -> bool:
        return not self._completed and not self.cancelled

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled


class ServerSession:
    _initialization_state: InitializationState = InitializationState.NotInitialized
    _client_params: types.InitializeRequestParams | None = None

    def __init__(
        self,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
        init_options: InitializationOptions,
        ordered_responses: bool = False,
    ) -> None:
        self._read_stream = read_stream
        self._write_stream = write_stream
        self._init_options = init_options
        self._ordered_responses = ordered_responses
        self._initialization_state = InitializationState.NotInitialized
        self._in_flight: dict[types.RequestId, RequestResponder] = {}
        self._closed = False
        # arrival-order bookkeeping, used only with ordered_responses
        self._next_sequence = 0
        self._next_to_write = 0
        self._finished: dict[int, SessionMessage | None] = {}
        self._write_lock = anyio.Lock()
        self._incoming_message_stream_writer, self._incoming_message_stream_reader = (
            anyio.create_memory_object_stream[RequestResponder](math.inf)
        )

    async def __aenter__(self) -> Self:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        self._task_group.start_soon(self._receive_loop)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        self._shutdown()
        self._task_group.cancel_scope.cancel()
        try:
            return await self._task_group.__aexit__(exc_type, exc_val, exc_tb)
        finally:
            await self._write_stream.aclose()

    @property
    def client_params(self) -> types.InitializeRequestParams | None:
        return self._client_params

    @property
    def closed(self) -> bool:
        """True once the transport is gone; no new work is admitted."""
        return self._closed

    @property
    def in_flight(self) -> dict[types.RequestId, RequestResponder]:
        return dict(self._in_flight)

    @property
    def incoming_messages(self) -> MemoryObjectReceiveStream[RequestResponder]:
        return self._incoming_message_stream_reader

    async def _receive_loop(self) -> None:
        async with self._incoming_message_stream_writer:
            try:
                async with self._read_stream:
                    async for message in self._read_stream:
                        if isinstance(message, Exception):
                            await self._received_transport_error(message)
                            continue
                        match message.message.root:
                            case types.JSONRPCRequest() as request:
                                await self._received_request(request, message.metadata)
                            case types.JSONRPCNotification() as notification:
                                await self._received_notification(notification)
                            case other:
                                logger.warning("Ignoring unexpected %s from client", type(other).__name__)
            except anyio.ClosedResourceError:
                logger.debug("Read stream closed by client")
            finally:
                self._shutdown()

    def _shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._in_flight:
            logger.info("Transport closed, cancelling %d in-flight request(s)", len(self._in_flight))
        for responder in list(self._in_flight.values()):
            responder.cancel(CANCEL_REASON_SHUTDOWN)

    async def _received_transport_error(self, error: Exception) -> None:
        logger.warning("Failed to decode message from client: %s", error)
        await self._write(
            SessionMessage(
                types.JSONRPCMessage(
                    types.JSONRPCError(
                        jsonrpc="2.0",
                        id=None,
                        error=types.ErrorData(code=types.PARSE_ERROR, message="Parse error", data=str(error)),
                    )
                )
            )
        )

    def _new_responder(self, request: types.JSONRPCRequest, metadata: Any) -> RequestResponder:
        meta = None
        if request.params and "_meta" in request.params:
            try:
                meta = types.RequestParams.model_validate(request.params).meta
            except ValidationError:
                logger.debug("Ignoring malformed _meta on request %s", request.id)
        sequence = self._next_sequence
        self._next_sequence += 1
        return RequestResponder(
            request_id=request.id,
            method=request.method,
            params=request.params,
            request_meta=meta,
            session=self,
            sequence=sequence,
            on_complete=self._request_finished,
            message_metadata=metadata,
        )

    def _request_finished(self, responder: RequestResponder) -> None:
        if self._in_flight.get(responder.request_id) is responder:
            del self._in_flight[responder.request_id]
        if self._ordered_responses and not responder.completed:
            # Never answered; later responses must not wait for it.
            self._finished[responder.sequence] = None

    async def _received_request(self, request: types.JSONRPCRequest, metadata: Any) -> None:
        responder = self._new_responder(request, metadata)

        if request.id in self._in_flight:
            with responder:
                await responder.respond(
                    types.ErrorData(
                        code=types.INVALID_REQUEST,
                        message="Duplicate request id",
                        data={"id": request.id},
                    )
                )
            return

        match request.method:
            case "initialize":
                await self._initialize(responder)
                return
            case "ping":
                # Ping requests are allowed at any time
                pass
            case _:
                if self._initialization_state == InitializationState.NotInitialized:
                    with responder:
                        await responder.respond(
                            types.ErrorData(
                                code=types.INVALID_REQUEST,
                                message="Received request before initialization was complete",
                            )
                        )
                    return

        self._in_flight[responder.request_id] = responder
        await self._incoming_message_stream_writer.send(responder)

    async def _initialize(self, responder: RequestResponder) -> None:
        with responder:
            try:
                params = types.InitializeRequestParams.model_validate(responder.params or {})
            except ValidationError as e:
                logger.warning("Invalid initialize request: %s", e)
                await responder.respond(
                    types.ErrorData(code=types.INVALID_PARAMS, message="Invalid request parameters", data=str(e))
                )
                return
            requested_version = params.protocolVersion
            self._initialization_state = InitializationState.Initializing
            self._client_params = params
            await responder.respond(
                types.ServerResult(
                    types.InitializeResult(
                        protocolVersion=requested_version
                        if requested_version in types.SUPPORTED_PROTOCOL_VERSIONS
                        else types.LATEST_PROTOCOL_VERSION,
                        capabilities=self._init_options.capabilities,
                        serverInfo=types.Implementation(
                            name=self._init_options.server_name,
                            version=self._init_options.server_version,
                        ),
                        instructions=self._init_options.instructions,
                    )
                )
            )
        logger.debug("Initialized session for client %s", params.clientInfo.name)

    async def _received_notification(self, message: types.JSONRPCNotification) -> None:
        # Need this to avoid ASYNC910
        await anyio.lowlevel.checkpoint()
        try:
            notification = types.ClientNotification.model_validate(
                message.model_dump(by_alias=True, mode="json", exclude_none=True)
            )
        except ValidationError as e:
            logger.warning("Failed to validate notification %s: %s", message.method, e)
            return

        match notification.root:
            case types.InitializedNotification():
                self._initialization_state = InitializationState.Initialized
            case types.CancelledNotification(params=params):
                responder = self._in_flight.get(params.requestId)
                if responder is None:
                    logger.debug("Cancellation for unknown or finished request %s", params.requestId)
                    return
                logger.info("Client cancelled request %s (%s)", params.requestId, params.reason or "no reason")
                responder.cancel(CANCEL_REASON_CLIENT)
            case _:
                pass

    async def _send_response(
        self, responder: RequestResponder, response: types.ServerResult | types.ErrorData
    ) -> None:
        message = SessionMessage(to_jsonrpc(responder.request_id, response))
        if not self._ordered_responses:
            await self._write(message)
            return
        async with self._write_lock:
            self._finished[responder.sequence] = message
            while self._next_to_write in self._finished:
                ready = self._finished.pop(self._next_to_write)
                self._next_to_write += 1
                if ready is not None:
                    await self._write(ready)

    async def _write(self, message: SessionMessage) -> None:
        try:
            await self._write_stream.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("Write stream closed, dropping outgoing message")

    async def send_notification(
        self,
        notification: types.ServerNotification,
        related_request_id: types.RequestId | None = None,
    ) -> None:
        jsonrpc_notification = types.JSONRPCNotification(
            jsonrpc="2.0",
            **notification.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        await self._write(
            SessionMessage(
                types.JSONRPCMessage(jsonrpc_notification),
                metadata=ServerMessageMetadata(related_request_id=related_request_id)
                if related_request_id is not None
                else None,
            )
        )

    async def send_progress_notification(
        self,
        progress_token: str | int,
        progress: float,
        total: float | None = None,
        message: str | None = None,
        related_request_id: types.RequestId | None = None,
    ) -> None:
        """Send a progress notification."""
        await self.send_notification(
            types.ServerNotification(
                types.ProgressNotification(
                    params=types.ProgressNotificationParams(
                        progressToken=progress_token,
                        progress=progress,
                        total=total,
                        message=message,
                    ),
                )
            ),
            related_request_id,
        )

    async def send_resource_updated(self, uri: str) -> None:
        """Send a resource updated notification."""
        await self.send_notification(
            types.ServerNotification(
                types.ResourceUpdatedNotification(
                    params=types.ResourceUpdatedNotificationParams(uri=uri),
                )
            )
        )

    async def send_resource_list_changed(self) -> None:
        """Send a resource list changed notification."""
        await self.send_notification(types.ServerNotification(types.ResourceListChangedNotification()))

    async def send_tool_list_changed(self) -> None:
        """Send a tool list changed notification."""
        await self.send_notification(types.ServerNotification(types.ToolListChangedNotification()))

    async def send_prompt_list_changed(self) -> None:
        """Send a prompt list changed notification."""
        await self.send_notification(types.ServerNotification(types.PromptListChangedNotification()))

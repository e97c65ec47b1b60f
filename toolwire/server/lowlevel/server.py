# toolwire/server/lowlevel/server.py
"""
toolwire Server Module

This module provides the dispatcher of a toolwire server: it keeps the registries
of tools, resources and prompts, advertises the categories it serves, and routes
every incoming request to the matching handler.

Usage:
1. Create a Server instance:
   server = Server("your_server_name")

2. Register handlers. A handler takes the request context and the validated
   arguments and returns a value; it may be sync or async:
    @server.tool(arguments=[{"name": "city", "type": "string", "required": True}])
    async def weather(ctx: RequestContext, args: dict[str, Any]) -> str:
        # Implementation

    @server.resource("config://app")
    def app_config(ctx: RequestContext, args: dict[str, Any]) -> str:
        # Implementation

    @server.prompt()
    def review(ctx: RequestContext, args: dict[str, Any]) -> str:
        # Implementation

3. Run the server:
   async def main():
       async with toolwire.server.stdio.stdio_server() as (read_stream, write_stream):
           await server.run(read_stream, write_stream)

   anyio.run(main)

Handlers can read the request they serve through `server.request_context`, which
is also their first argument.
"""

from __future__ import annotations as _annotations

import dataclasses
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Generic, Literal

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import ValidationError
from typing_extensions import TypeVar

import toolwire.types as types
from toolwire.server.execution import CancellationToken, Failure, HandlerExecutor, InvocationResult, request_ctx
from toolwire.server.formatting import (
    format_error,
    format_prompt_result,
    format_resource_result,
    format_tool_result,
)
from toolwire.server.models import InitializationOptions, SessionState
from toolwire.server.negotiation import CapabilityFlags, NotificationOptions, advertises, negotiate
from toolwire.server.registry import ArgumentSpec, CapabilityCategory, CapabilityDescriptor, CapabilityRegistry
from toolwire.server.session import RequestResponder, ServerSession
from toolwire.server.settings import Settings
from toolwire.server.stdio import stdio_server
from toolwire.server.validation import ArgumentValidator
from toolwire.shared.context import RequestContext
from toolwire.shared.exceptions import ToolwireError
from toolwire.shared.message import SessionMessage
from toolwire.utilities.logging import configure_logging, get_logger

logger = get_logger(__name__)

LifespanResultT = TypeVar("LifespanResultT", default=Any)

RequestHandler = Callable[[Any, RequestContext[Any]], Awaitable[types.ServerResult | types.ErrorData]]

REQUEST_TYPES: dict[str, type] = {
    "ping": types.PingRequest,
    "tools/list": types.ListToolsRequest,
    "tools/call": types.CallToolRequest,
    "resources/list": types.ListResourcesRequest,
    "resources/read": types.ReadResourceRequest,
    "resources/subscribe": types.SubscribeRequest,
    "resources/unsubscribe": types.UnsubscribeRequest,
    "prompts/list": types.ListPromptsRequest,
    "prompts/get": types.GetPromptRequest,
}

# The category of a request comes from its method, never from the target name.
REQUEST_CATEGORIES: dict[type, CapabilityCategory] = {
    types.ListToolsRequest: CapabilityCategory.TOOL,
    types.CallToolRequest: CapabilityCategory.TOOL,
    types.ListResourcesRequest: CapabilityCategory.RESOURCE,
    types.ReadResourceRequest: CapabilityCategory.RESOURCE,
    types.SubscribeRequest: CapabilityCategory.RESOURCE,
    types.UnsubscribeRequest: CapabilityCategory.RESOURCE,
    types.ListPromptsRequest: CapabilityCategory.PROMPT,
    types.GetPromptRequest: CapabilityCategory.PROMPT,
}

ArgumentsInput = Iterable[ArgumentSpec | dict[str, Any]] | None


@asynccontextmanager
async def lifespan(_: Server[LifespanResultT]) -> AsyncIterator[dict[str, Any]]:
    """Default lifespan context manager that does nothing.

    Args:
        server: The server instance this lifespan is managing

    Returns:
        An empty context object
    """
    yield {}


def _argument_specs(arguments: ArgumentsInput) -> tuple[ArgumentSpec, ...]:
    return tuple(arg if isinstance(arg, ArgumentSpec) else ArgumentSpec.model_validate(arg) for arg in arguments or ())


def _method_not_found(method: str) -> types.ErrorData:
    return types.ErrorData(code=types.METHOD_NOT_FOUND, message="Method not found", data={"method": method})


def _params_errors(error: ValidationError) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    for item in error.errors():
        loc = [str(part) for part in item.get("loc", ()) if part != "params"]
        errors.append({"field": ".".join(loc), "message": item.get("msg", "Invalid value")})
    return errors


class Server(Generic[LifespanResultT]):
    def __init__(
        self,
        name: str,
        version: str | None = None,
        instructions: str | None = None,
        lifespan: Callable[
            [Server[LifespanResultT]],
            AbstractAsyncContextManager[LifespanResultT],
        ] = lifespan,
        notification_options: NotificationOptions | None = None,
        experimental_capabilities: dict[str, dict[str, Any]] | None = None,
        *,
        debug: bool | None = None,
        log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None,
        max_concurrency: int | None = None,
        admission_timeout: float | None = None,
        # 0 disables the call timeout
        call_timeout: float | None = None,
        cancel_grace: float | None = None,
        duplicate_policy: Literal["error", "replace"] | None = None,
        warn_on_duplicate: bool | None = None,
        strict_arguments: bool | None = None,
        ordered_responses: bool | None = None,
        enable_tools: bool | None = None,
        enable_resources: bool | None = None,
        enable_prompts: bool | None = None,
        resources_subscribe: bool | None = None,
    ):
        # Build Settings while only overriding the default if a value was provided.
        provided = dict[str, Any](
            debug=debug,
            log_level=log_level,
            max_concurrency=max_concurrency,
            admission_timeout=admission_timeout,
            call_timeout=call_timeout,
            cancel_grace=cancel_grace,
            duplicate_policy=duplicate_policy,
            warn_on_duplicate=warn_on_duplicate,
            strict_arguments=strict_arguments,
            ordered_responses=ordered_responses,
            enable_tools=enable_tools,
            enable_resources=enable_resources,
            enable_prompts=enable_prompts,
            resources_subscribe=resources_subscribe,
        )
        self.settings = Settings(**{key: value for key, value in provided.items() if value is not None})
        configure_logging("DEBUG" if self.settings.debug else self.settings.log_level)

        self.name = name
        self.version = version
        self.instructions = instructions
        self.lifespan = lifespan
        self.notification_options = notification_options or NotificationOptions()
        self.experimental_capabilities = experimental_capabilities
        self.flags = CapabilityFlags(
            tools=self.settings.enable_tools,
            resources=self.settings.enable_resources,
            prompts=self.settings.enable_prompts,
            resources_subscribe=self.settings.resources_subscribe,
        )
        self.registry = CapabilityRegistry(
            duplicate_policy=self.settings.duplicate_policy,
            warn_on_duplicate=self.settings.warn_on_duplicate,
        )
        self.validator = ArgumentValidator(strict=self.settings.strict_arguments)
        self.request_handlers: dict[type, RequestHandler] = {
            types.PingRequest: self._ping,
            types.ListToolsRequest: self._list_tools,
            types.CallToolRequest: self._call_tool,
            types.ListResourcesRequest: self._list_resources,
            types.ReadResourceRequest: self._read_resource,
            types.SubscribeRequest: self._subscribe,
            types.UnsubscribeRequest: self._unsubscribe,
            types.ListPromptsRequest: self._list_prompts,
            types.GetPromptRequest: self._get_prompt,
        }
        self._started_at = datetime.now(timezone.utc)
        self._state: SessionState | None = None
        self._executor: HandlerExecutor | None = None
        self._sessions: weakref.WeakSet[ServerSession] = weakref.WeakSet()
        self._subscriptions: dict[str, weakref.WeakSet[ServerSession]] = {}
        logger.debug("Initializing server %r", name)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _register(self, category: CapabilityCategory, descriptor: CapabilityDescriptor) -> CapabilityDescriptor:
        previous = self.registry.get(category, descriptor.name)
        self.registry.register(category, descriptor)
        if previous is not None:
            self.validator.forget(previous)
        return descriptor

    def _remove(self, category: CapabilityCategory, name: str) -> None:
        self.validator.forget(self.registry.unregister(category, name))

    def add_tool(
        self,
        fn: Callable[..., Any],
        name: str | None = None,
        title: str | None = None,
        description: str | None = None,
        arguments: ArgumentsInput = None,
        output_schema: dict[str, Any] | None = None,
    ) -> CapabilityDescriptor:
        """Add a tool to the server.

        Args:
            fn: The handler, called as ``fn(context, arguments)``
            name: Optional name for the tool (defaults to function name)
            title: Optional human-readable title for the tool
            description: Optional description (defaults to the docstring)
            arguments: Declared arguments, as `ArgumentSpec`s or plain dicts
            output_schema: Optional JSON schema the structured output must satisfy
        """
        descriptor = CapabilityDescriptor.from_function(
            fn,
            name=name,
            title=title,
            description=description,
            arguments=_argument_specs(arguments),
            output_schema=output_schema,
        )
        return self._register(CapabilityCategory.TOOL, descriptor)

    def tool(
        self,
        name: str | None = None,
        title: str | None = None,
        description: str | None = None,
        arguments: ArgumentsInput = None,
        output_schema: dict[str, Any] | None = None,
    ) -> Callable[[types.AnyFunction], types.AnyFunction]:
        """Decorator to register a tool.

        Example:

        ```python
        @server.tool(arguments=[{"name": "x", "type": "integer", "required": True}])
        def double(ctx, args) -> str:
            return str(args["x"] * 2)
        ```
        """
        # Check if user passed function directly instead of calling decorator
        if callable(name):
            raise TypeError(
                "The @tool decorator was used incorrectly. Did you forget to call it? Use @tool() instead of @tool"
            )

        def decorator(fn: types.AnyFunction) -> types.AnyFunction:
            self.add_tool(
                fn,
                name=name,
                title=title,
                description=description,
                arguments=arguments,
                output_schema=output_schema,
            )
            return fn

        return decorator

    def remove_tool(self, name: str) -> None:
        """Remove a tool.

        Raises:
            NotFoundError: no tool is registered under this name.
        """
        self._remove(CapabilityCategory.TOOL, name)

    def add_resource(
        self,
        fn: Callable[..., Any],
        uri: str,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> CapabilityDescriptor:
        """Add a resource to the server. Resources are keyed by URI."""
        descriptor = CapabilityDescriptor.from_function(
            fn,
            name=uri,
            title=name or getattr(fn, "__name__", None),
            description=description,
            mime_type=mime_type,
        )
        return self._register(CapabilityCategory.RESOURCE, descriptor)

    def resource(
        self,
        uri: str,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> Callable[[types.AnyFunction], types.AnyFunction]:
        """Decorator to register a resource under a URI.

        Example:

        ```python
        @server.resource("config://app", mime_type="application/json")
        def app_config(ctx, args) -> dict:
            return {"theme": "dark"}
        ```
        """
        # Check if user passed function directly instead of calling decorator
        if callable(uri):
            raise TypeError(
                "The @resource decorator was used incorrectly. "
                "Did you forget to call it? Use @resource('uri') instead of @resource"
            )

        def decorator(fn: types.AnyFunction) -> types.AnyFunction:
            self.add_resource(fn, uri=uri, name=name, description=description, mime_type=mime_type)
            return fn

        return decorator

    def remove_resource(self, uri: str) -> None:
        self._remove(CapabilityCategory.RESOURCE, uri)
        self._subscriptions.pop(uri, None)

    def add_prompt(
        self,
        fn: Callable[..., Any],
        name: str | None = None,
        title: str | None = None,
        description: str | None = None,
        arguments: ArgumentsInput = None,
    ) -> CapabilityDescriptor:
        """Add a prompt to the server."""
        descriptor = CapabilityDescriptor.from_function(
            fn,
            name=name,
            title=title,
            description=description,
            arguments=_argument_specs(arguments),
        )
        return self._register(CapabilityCategory.PROMPT, descriptor)

    def prompt(
        self,
        name: str | None = None,
        title: str | None = None,
        description: str | None = None,
        arguments: ArgumentsInput = None,
    ) -> Callable[[types.AnyFunction], types.AnyFunction]:
        """Decorator to register a prompt.

        Example:

        ```python
        @server.prompt(arguments=[{"name": "topic", "required": True}])
        def explain(ctx, args) -> str:
            return f"Explain {args['topic']} in one paragraph."
        ```
        """
        # Check if user passed function directly instead of calling decorator
        if callable(name):
            raise TypeError(
                "The @prompt decorator was used incorrectly. Did you forget to call it? Use @prompt() instead of @prompt"
            )

        def decorator(fn: types.AnyFunction) -> types.AnyFunction:
            self.add_prompt(fn, name=name, title=title, description=description, arguments=arguments)
            return fn

        return decorator

    def remove_prompt(self, name: str) -> None:
        self._remove(CapabilityCategory.PROMPT, name)

    # ------------------------------------------------------------------
    # Capabilities and state
    # ------------------------------------------------------------------

    def get_capabilities(
        self,
        notification_options: NotificationOptions | None = None,
        experimental_capabilities: dict[str, dict[str, Any]] | None = None,
    ) -> types.ServerCapabilities:
        """Compute capabilities from the current registry population and flags."""
        return negotiate(
            self.registry,
            self.flags,
            notification_options or self.notification_options,
            experimental_capabilities if experimental_capabilities is not None else self.experimental_capabilities,
        )

    def _server_version(self) -> str:
        def pkg_version(package: str) -> str:
            try:
                from importlib.metadata import version

                return version(package)
            except Exception:
                pass

            return "unknown"

        return self.version if self.version else pkg_version("toolwire")

    @property
    def state(self) -> SessionState:
        """Frozen server state; capabilities are negotiated on first access."""
        if self._state is None:
            self._state = SessionState(
                server_name=self.name,
                server_version=self._server_version(),
                started_at=self._started_at,
                capabilities=self.get_capabilities(),
            )
            logger.debug("Negotiated capabilities: %s", self._state.capabilities.model_dump(exclude_none=True))
        return self._state

    def renegotiate(self) -> SessionState:
        """Recompute capabilities after registry changes.

        Sessions that already completed the handshake keep the capabilities they
        were given.
        """
        self._state = None
        return self.state

    def create_initialization_options(self) -> InitializationOptions:
        """Create initialization options from this server instance."""
        state = self.state
        return InitializationOptions(
            server_name=state.server_name,
            server_version=state.server_version,
            capabilities=state.capabilities,
            instructions=self.instructions,
        )

    @property
    def executor(self) -> HandlerExecutor:
        # Created on first use so the limiter belongs to the running event loop.
        if self._executor is None:
            self._executor = HandlerExecutor(
                max_concurrency=self.settings.max_concurrency,
                admission_timeout=self.settings.admission_timeout,
                call_timeout=self.settings.call_timeout,
                cancel_grace=self.settings.cancel_grace,
            )
        return self._executor

    @property
    def request_context(self) -> RequestContext[LifespanResultT]:
        """If called outside of a request context, this will raise a LookupError."""
        return request_ctx.get()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def route(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        request_id: types.RequestId = 0,
        meta: types.RequestParams.Meta | None = None,
        session: ServerSession | None = None,
        lifespan_context: Any = None,
        cancellation: CancellationToken | None = None,
    ) -> types.ServerResult | types.ErrorData:
        """Route one request to its handler and return the result or error to send."""
        request_type = REQUEST_TYPES.get(method)
        handler = self.request_handlers.get(request_type) if request_type is not None else None
        if request_type is None or handler is None:
            logger.debug("Unknown method %r", method)
            return _method_not_found(method)

        category = REQUEST_CATEGORIES.get(request_type)
        state = self.state
        if category is not None and not advertises(state.capabilities, category):
            logger.debug("Method %r belongs to non-advertised category %s", method, category.value)
            return _method_not_found(method)

        try:
            request = request_type.model_validate({"method": method, "params": params})
        except ValidationError as e:
            logger.debug("Invalid params for %r: %s", method, e)
            return types.ErrorData(
                code=types.INVALID_PARAMS,
                message="Invalid request parameters",
                data={"errors": _params_errors(e)},
            )

        context = RequestContext(
            request_id=request_id,
            meta=meta,
            session=session,
            lifespan_context=lifespan_context,
            state=state,
            category=category.value if category else "server",
            target="",
            cancellation=cancellation or CancellationToken(),
        )
        try:
            return await handler(request, context)
        except ToolwireError as err:
            logger.debug("Request %s failed: %s", request_id, err.error.message)
            return err.error

    async def _invoke(
        self,
        category: CapabilityCategory,
        target: str,
        raw_arguments: dict[str, Any] | None,
        context: RequestContext[Any],
    ) -> tuple[CapabilityDescriptor, InvocationResult]:
        descriptor = self.registry.lookup(category, target)
        arguments = self.validator.validate(descriptor, raw_arguments)
        logger.debug("Dispatching %s %r", category.value, target)
        outcome = await self.executor.invoke(descriptor, arguments, dataclasses.replace(context, target=target))
        return descriptor, outcome

    def _format(
        self,
        formatter: Callable[[Any, CapabilityDescriptor], Any],
        descriptor: CapabilityDescriptor,
        outcome: InvocationResult,
    ) -> types.ServerResult | types.ErrorData:
        if isinstance(outcome, Failure):
            return outcome.error
        try:
            return types.ServerResult(formatter(outcome.value, descriptor))
        except ToolwireError as err:
            logger.warning("Could not format result of %r: %s", descriptor.name, err.error.message)
            return err.error
        except Exception as err:
            logger.exception("Could not format result of %r", descriptor.name)
            return format_error(err)

    async def _ping(self, request: types.PingRequest, context: RequestContext[Any]) -> types.ServerResult:
        return types.ServerResult(types.EmptyResult())

    async def _list_tools(self, request: types.ListToolsRequest, context: RequestContext[Any]) -> types.ServerResult:
        tools = [descriptor.to_tool() for descriptor in self.registry.list(CapabilityCategory.TOOL)]
        return types.ServerResult(types.ListToolsResult(tools=tools))

    async def _call_tool(
        self, request: types.CallToolRequest, context: RequestContext[Any]
    ) -> types.ServerResult | types.ErrorData:
        descriptor, outcome = await self._invoke(
            CapabilityCategory.TOOL, request.params.name, request.params.arguments, context
        )
        return self._format(format_tool_result, descriptor, outcome)

    async def _list_resources(
        self, request: types.ListResourcesRequest, context: RequestContext[Any]
    ) -> types.ServerResult:
        resources = [descriptor.to_resource() for descriptor in self.registry.list(CapabilityCategory.RESOURCE)]
        return types.ServerResult(types.ListResourcesResult(resources=resources))

    async def _read_resource(
        self, request: types.ReadResourceRequest, context: RequestContext[Any]
    ) -> types.ServerResult | types.ErrorData:
        descriptor, outcome = await self._invoke(CapabilityCategory.RESOURCE, request.params.uri, {}, context)
        return self._format(format_resource_result, descriptor, outcome)

    def _subscriptions_enabled(self, context: RequestContext[Any]) -> bool:
        resources = context.state.capabilities.resources
        return resources is not None and bool(resources.subscribe)

    async def _subscribe(
        self, request: types.SubscribeRequest, context: RequestContext[Any]
    ) -> types.ServerResult | types.ErrorData:
        if not self._subscriptions_enabled(context):
            return _method_not_found(request.method)
        uri = request.params.uri
        self.registry.lookup(CapabilityCategory.RESOURCE, uri)
        if context.session is not None:
            self._subscriptions.setdefault(uri, weakref.WeakSet()).add(context.session)
        logger.debug("Subscribed to %s", uri)
        return types.ServerResult(types.EmptyResult())

    async def _unsubscribe(
        self, request: types.UnsubscribeRequest, context: RequestContext[Any]
    ) -> types.ServerResult | types.ErrorData:
        if not self._subscriptions_enabled(context):
            return _method_not_found(request.method)
        uri = request.params.uri
        self.registry.lookup(CapabilityCategory.RESOURCE, uri)
        subscribers = self._subscriptions.get(uri)
        if subscribers is not None and context.session is not None:
            subscribers.discard(context.session)
        logger.debug("Unsubscribed from %s", uri)
        return types.ServerResult(types.EmptyResult())

    async def _list_prompts(self, request: types.ListPromptsRequest, context: RequestContext[Any]) -> types.ServerResult:
        prompts = [descriptor.to_prompt() for descriptor in self.registry.list(CapabilityCategory.PROMPT)]
        return types.ServerResult(types.ListPromptsResult(prompts=prompts))

    async def _get_prompt(
        self, request: types.GetPromptRequest, context: RequestContext[Any]
    ) -> types.ServerResult | types.ErrorData:
        descriptor, outcome = await self._invoke(
            CapabilityCategory.PROMPT, request.params.name, request.params.arguments, context
        )
        return self._format(format_prompt_result, descriptor, outcome)

    # ------------------------------------------------------------------
    # Outgoing notifications
    # ------------------------------------------------------------------

    def subscribers(self, uri: str) -> list[ServerSession]:
        return list(self._subscriptions.get(uri, ()))

    async def notify_resource_updated(self, uri: str) -> None:
        """Tell every session subscribed to `uri` that the resource changed."""
        for session in self.subscribers(uri):
            await session.send_resource_updated(uri)

    async def notify_list_changed(self, category: CapabilityCategory | str) -> None:
        """Send a list_changed notification to every connected session.

        Nothing is sent unless the matching `NotificationOptions` flag is on.
        """
        category = CapabilityCategory(category)
        options = self.notification_options
        for session in list(self._sessions):
            match category:
                case CapabilityCategory.TOOL if options.tools_changed:
                    await session.send_tool_list_changed()
                case CapabilityCategory.RESOURCE if options.resources_changed:
                    await session.send_resource_list_changed()
                case CapabilityCategory.PROMPT if options.prompts_changed:
                    await session.send_prompt_list_changed()
                case _:
                    pass

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
        initialization_options: InitializationOptions | None = None,
        # When False, exceptions are returned as messages to the client.
        # When True, exceptions are raised, which will cause the server to shut down
        # but also make tracing exceptions much easier during testing and when using
        # in-process servers.
        raise_exceptions: bool = False,
    ):
        initialization_options = initialization_options or self.create_initialization_options()
        async with AsyncExitStack() as stack:
            lifespan_context = await stack.enter_async_context(self.lifespan(self))
            session = await stack.enter_async_context(
                ServerSession(
                    read_stream,
                    write_stream,
                    initialization_options,
                    ordered_responses=self.settings.ordered_responses,
                )
            )
            self._sessions.add(session)
            try:
                async with anyio.create_task_group() as tg:
                    async for responder in session.incoming_messages:
                        logger.debug("Received request %s: %s", responder.request_id, responder.method)

                        tg.start_soon(
                            self._handle_message,
                            responder,
                            session,
                            lifespan_context,
                            raise_exceptions,
                        )
            finally:
                self._drop_session(session)

    def _drop_session(self, session: ServerSession) -> None:
        self._sessions.discard(session)
        for subscribers in self._subscriptions.values():
            subscribers.discard(session)
        if not self._sessions:
            self._state = None

    async def _handle_message(
        self,
        responder: RequestResponder,
        session: ServerSession,
        lifespan_context: LifespanResultT,
        raise_exceptions: bool = False,
    ):
        with responder:
            await self._handle_request(responder, session, lifespan_context, raise_exceptions)

    async def _handle_request(
        self,
        responder: RequestResponder,
        session: ServerSession,
        lifespan_context: LifespanResultT,
        raise_exceptions: bool,
    ):
        logger.info("Processing request %s (%s)", responder.request_id, responder.method)
        try:
            response = await self.route(
                responder.method,
                responder.params,
                request_id=responder.request_id,
                meta=responder.request_meta,
                session=session,
                lifespan_context=lifespan_context,
                cancellation=responder.cancellation,
            )
        except anyio.get_cancelled_exc_class():
            logger.info("Request %s cancelled before a response was produced", responder.request_id)
            raise
        except Exception as err:
            if raise_exceptions:
                raise err
            logger.exception("Unexpected error while routing request %s", responder.request_id)
            response = format_error(err)

        await responder.respond(response)
        logger.debug("Response sent")

    async def run_stdio_async(self) -> None:
        """Run the server using stdio transport."""
        async with stdio_server() as (read_stream, write_stream):
            await self.run(read_stream, write_stream)

    def run_stdio(self) -> None:
        """Run the server over stdio. Note this is a synchronous function."""
        anyio.run(self.run_stdio_async)

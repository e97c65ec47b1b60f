# tests/unit/server/test_routing.py
import re
from datetime import datetime, timezone
from typing import Any

import pytest

import toolwire.types as types
from toolwire.server.exceptions import DuplicateNameError, NotFoundError
from toolwire.server.lowlevel.server import Server
from toolwire.server.registry import ArgumentSpec, CapabilityCategory
from toolwire.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    ErrorData,
    ServerResult,
)

RFC3339 = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$")


def _register_get_time(server: Server) -> None:
    @server.tool(arguments=[ArgumentSpec(name="format", type="string", default="RFC3339")])
    def get_time(ctx, args: dict[str, Any]) -> str:
        """Current time as RFC3339 or Unix seconds."""
        now = datetime.now(timezone.utc)
        if args["format"] == "Unix":
            return str(int(now.timestamp()))
        return now.isoformat()


def _text(result: ServerResult | ErrorData) -> str:
    assert isinstance(result, ServerResult), result
    return result.root.content[0].text


@pytest.mark.anyio
async def test_get_time_end_to_end(server):
    """
    Invoking get_time without arguments uses the declared default; "Unix" gives
    digits only.
    """
    _register_get_time(server)

    # 1. No arguments: default format
    default = await server.route("tools/call", {"name": "get_time"})
    assert RFC3339.match(_text(default))

    # 2. Explicit format
    unix = await server.route("tools/call", {"name": "get_time", "arguments": {"format": "Unix"}})
    assert _text(unix).isdigit()


@pytest.mark.anyio
async def test_unknown_target_is_invalid_params(server):
    _register_get_time(server)

    result = await server.route("tools/call", {"name": "get_weather"})

    assert isinstance(result, ErrorData)
    assert result.code == INVALID_PARAMS
    assert result.data == {"detail": "unknown target", "target": "get_weather"}


@pytest.mark.anyio
async def test_unknown_method(server):
    result = await server.route("tools/explode", {})

    assert isinstance(result, ErrorData)
    assert result.code == METHOD_NOT_FOUND


@pytest.mark.anyio
async def test_ping_is_always_routable(server):
    result = await server.route("ping")

    assert isinstance(result, ServerResult)
    assert isinstance(result.root, types.EmptyResult)


@pytest.mark.anyio
async def test_non_advertised_category_is_method_not_found(server):
    _register_get_time(server)

    result = await server.route("prompts/list")

    assert isinstance(result, ErrorData)
    assert result.code == METHOD_NOT_FOUND


@pytest.mark.anyio
async def test_explicitly_disabled_category_is_not_routable():
    server = Server("disabled", version="0.1.0", enable_tools=False)
    _register_get_time(server)

    result = await server.route("tools/call", {"name": "get_time"})

    assert isinstance(result, ErrorData)
    assert result.code == METHOD_NOT_FOUND
    assert server.state.capabilities.tools is None


@pytest.mark.anyio
async def test_explicitly_enabled_empty_category_lists_nothing():
    server = Server("enabled", version="0.1.0", enable_prompts=True)

    result = await server.route("prompts/list")

    assert isinstance(result, ServerResult)
    assert result.root.prompts == []


@pytest.mark.anyio
async def test_capabilities_are_fixed_until_renegotiated(server):
    _register_get_time(server)
    assert server.state.capabilities.prompts is None

    server.add_prompt(lambda ctx, args: "Say hi", name="greet")
    still_hidden = await server.route("prompts/get", {"name": "greet"})
    assert isinstance(still_hidden, ErrorData)
    assert still_hidden.code == METHOD_NOT_FOUND

    state = server.renegotiate()
    assert state.capabilities.prompts is not None
    shown = await server.route("prompts/get", {"name": "greet"})
    assert isinstance(shown, ServerResult)
    assert shown.root.messages[0].content.text == "Say hi"


@pytest.mark.anyio
async def test_list_preserves_registration_order(server):
    for name in ["zulu", "alpha", "mike"]:
        server.add_tool(lambda ctx, args: None, name=name)

    result = await server.route("tools/list")

    assert [tool.name for tool in result.root.tools] == ["zulu", "alpha", "mike"]


@pytest.mark.anyio
async def test_malformed_params_are_invalid_params(server):
    _register_get_time(server)

    result = await server.route("tools/call", {"arguments": {}})

    assert isinstance(result, ErrorData)
    assert result.code == INVALID_PARAMS
    assert result.data["errors"][0]["field"] == "name"


@pytest.mark.anyio
async def test_argument_errors_are_reported_per_field(server):
    _register_get_time(server)

    result = await server.route("tools/call", {"name": "get_time", "arguments": {"format": "Unix", "tz": "UTC"}})

    assert isinstance(result, ErrorData)
    assert result.code == INVALID_PARAMS
    assert result.data == {"errors": [{"argument": "tz", "message": "Unknown argument"}]}


@pytest.mark.anyio
async def test_lenient_mode_drops_unknown_arguments():
    server = Server("lenient", version="0.1.0", strict_arguments=False)
    _register_get_time(server)

    result = await server.route("tools/call", {"name": "get_time", "arguments": {"format": "Unix", "tz": "UTC"}})

    assert _text(result).isdigit()


@pytest.mark.anyio
async def test_fault_containment(server):
    """
    A handler fault becomes INTERNAL_ERROR and the next unrelated request still
    succeeds.
    """
    _register_get_time(server)

    @server.tool()
    async def explode(ctx, args):
        raise RuntimeError("handler bug")

    failed = await server.route("tools/call", {"name": "explode"})
    assert isinstance(failed, ErrorData)
    assert failed.code == INTERNAL_ERROR

    healthy = await server.route("tools/call", {"name": "get_time"})
    assert RFC3339.match(_text(healthy))


@pytest.mark.anyio
async def test_output_schema_violation_is_internal_error(server):
    @server.tool(output_schema={"type": "object", "required": ["celsius"]})
    def weather(ctx, args):
        return {"fahrenheit": 40}

    result = await server.route("tools/call", {"name": "weather"})

    assert isinstance(result, ErrorData)
    assert result.code == INTERNAL_ERROR


@pytest.mark.anyio
async def test_structured_tool_output(server):
    @server.tool(output_schema={"type": "object", "required": ["celsius"]})
    def weather(ctx, args):
        return {"celsius": 4}

    result = await server.route("tools/call", {"name": "weather"})

    assert result.root.structuredContent == {"celsius": 4}


@pytest.mark.anyio
async def test_read_resource(server):
    @server.resource("config://app", mime_type="application/json")
    def app_config(ctx, args):
        assert args == {}
        return '{"theme": "dark"}'

    listed = await server.route("resources/list")
    assert [r.uri for r in listed.root.resources] == ["config://app"]
    assert listed.root.resources[0].name == "app_config"

    result = await server.route("resources/read", {"uri": "config://app"})
    assert result.root.contents[0].text == '{"theme": "dark"}'
    assert result.root.contents[0].mimeType == "application/json"

    missing = await server.route("resources/read", {"uri": "config://nope"})
    assert missing.code == INVALID_PARAMS


@pytest.mark.anyio
async def test_subscribe_requires_subscribable_resources(server):
    server.add_resource(lambda ctx, args: "x", uri="file:///x")

    result = await server.route("resources/subscribe", {"uri": "file:///x"})

    assert isinstance(result, ErrorData)
    assert result.code == METHOD_NOT_FOUND


@pytest.mark.anyio
async def test_subscribe_and_unsubscribe():
    server = Server("subs", version="0.1.0", resources_subscribe=True)
    server.add_resource(lambda ctx, args: "x", uri="file:///x")

    ok = await server.route("resources/subscribe", {"uri": "file:///x"})
    assert isinstance(ok.root, types.EmptyResult)

    unknown = await server.route("resources/subscribe", {"uri": "file:///y"})
    assert unknown.code == INVALID_PARAMS

    ok = await server.route("resources/unsubscribe", {"uri": "file:///x"})
    assert isinstance(ok.root, types.EmptyResult)


@pytest.mark.anyio
async def test_prompt_arguments_are_validated(server):
    @server.prompt(arguments=[{"name": "topic", "type": "string", "required": True}])
    def explain(ctx, args):
        """Explain a topic."""
        return f"Explain {args['topic']} in one paragraph."

    listed = await server.route("prompts/list")
    assert listed.root.prompts[0].arguments[0].name == "topic"
    assert listed.root.prompts[0].arguments[0].required is True

    missing = await server.route("prompts/get", {"name": "explain"})
    assert missing.code == INVALID_PARAMS

    result = await server.route("prompts/get", {"name": "explain", "arguments": {"topic": "entropy"}})
    assert result.root.description == "Explain a topic."
    assert result.root.messages[0].role == "user"
    assert result.root.messages[0].content.text == "Explain entropy in one paragraph."


@pytest.mark.anyio
async def test_request_context_is_available_to_handlers(server):
    seen = {}

    @server.tool()
    async def whoami(ctx, args):
        seen["ctx"] = server.request_context
        return ctx.state.server_name

    result = await server.route("tools/call", {"name": "whoami"}, request_id=42)

    assert _text(result) == "unit-test-server"
    assert seen["ctx"].request_id == 42
    assert seen["ctx"].target == "whoami"
    assert seen["ctx"].category == "tool"


def test_decorator_without_parentheses_is_rejected(server):
    with pytest.raises(TypeError):

        @server.tool
        def oops(ctx, args):
            return None


def test_duplicate_registration_policy(server):
    server.add_tool(lambda ctx, args: 1, name="dup")
    with pytest.raises(DuplicateNameError):
        server.add_tool(lambda ctx, args: 2, name="dup")

    replacing = Server("replace", version="0.1.0", duplicate_policy="replace")
    replacing.add_tool(lambda ctx, args: 1, name="dup")
    replacing.add_tool(lambda ctx, args: 2, name="dup")
    assert replacing.registry.count(CapabilityCategory.TOOL) == 1


def test_remove_tool(server):
    server.add_tool(lambda ctx, args: 1, name="gone")
    server.remove_tool("gone")

    assert server.registry.is_empty(CapabilityCategory.TOOL)
    with pytest.raises(NotFoundError):
        server.remove_tool("gone")


def test_settings_come_from_environment(monkeypatch):
    monkeypatch.setenv("TOOLWIRE_MAX_CONCURRENCY", "3")
    monkeypatch.setenv("TOOLWIRE_ORDERED_RESPONSES", "true")

    from_env = Server("env")
    assert from_env.settings.max_concurrency == 3
    assert from_env.settings.ordered_responses is True

    overridden = Server("env", max_concurrency=7)
    assert overridden.settings.max_concurrency == 7


def test_initialization_options(server):
    _register_get_time(server)

    options = server.create_initialization_options()

    assert options.server_name == "unit-test-server"
    assert options.server_version == "0.1.0"
    assert options.capabilities.tools is not None
    assert server.state.uptime().total_seconds() >= 0


@pytest.mark.parametrize("debug, expected", [(False, "WARNING"), (True, "DEBUG")])
def test_debug_forces_debug_logging(monkeypatch, debug, expected):
    levels = []
    monkeypatch.setattr("toolwire.server.lowlevel.server.configure_logging", levels.append)

    Server("logging", debug=debug, log_level="WARNING")

    assert levels == [expected]

# tests/unit/server/test_registry.py
import threading

import pytest

from toolwire.server.exceptions import DuplicateNameError, NotFoundError
from toolwire.server.registry import (
    ArgumentSpec,
    CapabilityCategory,
    CapabilityDescriptor,
    CapabilityRegistry,
    DuplicatePolicy,
)


def _descriptor(name: str, handler=None, **kwargs) -> CapabilityDescriptor:
    def _handler(ctx, args):
        return name

    return CapabilityDescriptor.from_function(handler or _handler, name=name, **kwargs)


def test_register_and_lookup():
    registry = CapabilityRegistry()
    descriptor = registry.register(CapabilityCategory.TOOL, _descriptor("echo"))

    assert registry.lookup(CapabilityCategory.TOOL, "echo") is descriptor
    assert registry.lookup("tool", "echo") is descriptor
    assert ("tool", "echo") in registry
    assert registry.count(CapabilityCategory.TOOL) == 1


def test_lookup_of_unknown_name_raises_not_found():
    registry = CapabilityRegistry()

    with pytest.raises(NotFoundError) as exc_info:
        registry.lookup(CapabilityCategory.PROMPT, "missing")

    assert exc_info.value.error.data == {"detail": "unknown target", "target": "missing"}
    assert registry.get(CapabilityCategory.PROMPT, "missing") is None


def test_categories_are_separate_namespaces():
    registry = CapabilityRegistry()
    registry.register(CapabilityCategory.TOOL, _descriptor("summary"))
    registry.register(CapabilityCategory.PROMPT, _descriptor("summary"))

    assert registry.count(CapabilityCategory.TOOL) == 1
    assert registry.count(CapabilityCategory.PROMPT) == 1
    assert registry.is_empty(CapabilityCategory.RESOURCE)


def test_duplicate_name_in_strict_mode_is_rejected():
    registry = CapabilityRegistry(duplicate_policy=DuplicatePolicy.ERROR)
    original = registry.register(CapabilityCategory.TOOL, _descriptor("echo"))

    with pytest.raises(DuplicateNameError):
        registry.register(CapabilityCategory.TOOL, _descriptor("echo"))

    # The first registration is untouched
    assert registry.lookup(CapabilityCategory.TOOL, "echo") is original


def test_duplicate_name_in_replace_mode_keeps_position_and_warns(caplog):
    registry = CapabilityRegistry(duplicate_policy="replace")
    registry.register(CapabilityCategory.TOOL, _descriptor("a"))
    registry.register(CapabilityCategory.TOOL, _descriptor("b"))
    replacement = registry.register(CapabilityCategory.TOOL, _descriptor("a", description="new"))

    names = [d.name for d in registry.list(CapabilityCategory.TOOL)]
    assert names == ["a", "b"]
    assert registry.lookup(CapabilityCategory.TOOL, "a") is replacement
    assert "Replacing existing tool: a" in caplog.text


def test_replace_mode_without_warning(caplog):
    registry = CapabilityRegistry(duplicate_policy="replace", warn_on_duplicate=False)
    registry.register(CapabilityCategory.TOOL, _descriptor("a"))
    registry.register(CapabilityCategory.TOOL, _descriptor("a"))

    assert "Replacing existing" not in caplog.text


def test_listing_preserves_registration_order_and_is_restartable():
    registry = CapabilityRegistry()
    for name in ["zeta", "alpha", "mid"]:
        registry.register(CapabilityCategory.RESOURCE, _descriptor(name))

    listing = registry.list(CapabilityCategory.RESOURCE)
    assert [d.name for d in listing] == ["zeta", "alpha", "mid"]
    # Iterating again yields the same sequence
    assert [d.name for d in listing] == ["zeta", "alpha", "mid"]


def test_listing_is_a_snapshot():
    """
    A listing keeps the entries it started with even if the registry changes.
    """
    registry = CapabilityRegistry()
    registry.register(CapabilityCategory.TOOL, _descriptor("one"))
    listing = registry.list(CapabilityCategory.TOOL)

    registry.register(CapabilityCategory.TOOL, _descriptor("two"))
    registry.unregister(CapabilityCategory.TOOL, "one")

    assert [d.name for d in listing] == ["one"]
    assert [d.name for d in registry.list(CapabilityCategory.TOOL)] == ["two"]


def test_unregister_unknown_name_raises():
    registry = CapabilityRegistry()
    with pytest.raises(NotFoundError):
        registry.unregister(CapabilityCategory.TOOL, "ghost")


def test_concurrent_registration_loses_no_entries():
    registry = CapabilityRegistry()

    def register_batch(prefix: str):
        for i in range(50):
            registry.register(CapabilityCategory.TOOL, _descriptor(f"{prefix}-{i}"))

    threads = [threading.Thread(target=register_batch, args=(f"t{n}",)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.count(CapabilityCategory.TOOL) == 200


def test_descriptor_defaults_to_function_name_and_docstring():
    async def get_weather(ctx, args):
        """Current weather for a city."""

    descriptor = CapabilityDescriptor.from_function(get_weather)

    assert descriptor.name == "get_weather"
    assert descriptor.description == "Current weather for a city."
    assert descriptor.is_async is True


def test_descriptor_rejects_duplicate_argument_names():
    with pytest.raises(ValueError):
        _descriptor("bad", arguments=[ArgumentSpec(name="x"), ArgumentSpec(name="x")])


def test_input_schema_lists_arguments_in_order():
    descriptor = _descriptor(
        "get_time",
        arguments=[
            ArgumentSpec(name="format", type="string", default="RFC3339", description="Output format"),
            ArgumentSpec(name="zone", type="string", required=True),
        ],
    )

    schema = descriptor.input_schema()

    assert list(schema["properties"]) == ["format", "zone"]
    assert schema["properties"]["format"] == {"type": "string", "description": "Output format", "default": "RFC3339"}
    assert schema["required"] == ["zone"]
    assert descriptor.to_tool().inputSchema == schema

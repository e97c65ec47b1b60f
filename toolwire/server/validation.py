# toolwire/server/validation.py
"""Argument validation.

Declared `ArgumentSpec`s are compiled into a pydantic model per descriptor and raw
payloads are validated against it before any handler code runs. Lax-mode pydantic
coercion gives the "types coercible" behaviour ("5" -> 5 for an integer argument).
"""

from __future__ import annotations as _annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from toolwire.server.exceptions import ArgumentValidationError
from toolwire.server.registry import ArgumentSpec, CapabilityDescriptor

_TYPE_MAP: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "object": dict[str, Any],
    "array": list[Any],
    "any": Any,
}


class ArgumentsBase(BaseModel):
    """Base for the generated argument models."""

    def arguments(self) -> dict[str, Any]:
        """Return the validated values without re-serializing nested data."""
        return {name: getattr(self, name) for name in self.__class__.model_fields}


class StrictArguments(ArgumentsBase):
    model_config = ConfigDict(extra="forbid")


class LenientArguments(ArgumentsBase):
    model_config = ConfigDict(extra="ignore")


def _field_for(spec: ArgumentSpec) -> tuple[Any, Any]:
    annotation = _TYPE_MAP[spec.type]
    if spec.required:
        return annotation, Field(..., alias=spec.name)
    if spec.type != "any":
        annotation = annotation | None
    return annotation, Field(default=spec.default, alias=spec.name)


class ArgumentValidator:
    """Validates raw argument payloads against a descriptor's declared arguments."""

    def __init__(self, strict: bool = True):
        self.strict = strict
        # id(descriptor) -> (descriptor, model); the descriptor is kept so the id stays valid
        self._models: dict[int, tuple[CapabilityDescriptor, type[ArgumentsBase]]] = {}

    def model_for(self, descriptor: CapabilityDescriptor) -> type[ArgumentsBase]:
        cached = self._models.get(id(descriptor))
        if cached is not None and cached[0] is descriptor:
            return cached[1]
        # Argument names may collide with BaseModel attributes, so fields are positional
        # and the declared name is the alias.
        fields = {f"arg_{index}": _field_for(spec) for index, spec in enumerate(descriptor.arguments)}
        model = create_model(  # type: ignore[call-overload]
            f"{descriptor.name}Arguments",
            __base__=StrictArguments if self.strict else LenientArguments,
            **fields,
        )
        self._models[id(descriptor)] = (descriptor, model)
        return model

    def forget(self, descriptor: CapabilityDescriptor) -> None:
        self._models.pop(id(descriptor), None)

    def validate(self, descriptor: CapabilityDescriptor, raw: dict[str, Any] | None) -> dict[str, Any]:
        """Return validated arguments keyed by declared name, defaults filled in.

        Raises:
            ArgumentValidationError: with one entry per offending argument.
        """
        payload = {} if raw is None else raw
        if not isinstance(payload, dict):
            raise ArgumentValidationError(
                descriptor.name, [{"argument": "", "message": "Arguments must be an object"}]
            )
        model = self.model_for(descriptor)
        try:
            parsed = model.model_validate(payload)
        except ValidationError as e:
            raise ArgumentValidationError(descriptor.name, _field_errors(e)) from e
        values = parsed.arguments()
        return {spec.name: values[f"arg_{index}"] for index, spec in enumerate(descriptor.arguments)}


def _field_errors(error: ValidationError) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    for item in error.errors():
        loc = item.get("loc") or ()
        argument = str(loc[0]) if loc else ""
        match item.get("type"):
            case "extra_forbidden":
                message = "Unknown argument"
            case "missing":
                message = "Missing required argument"
            case _:
                message = item.get("msg", "Invalid value")
        errors.append({"argument": argument, "message": message})
    return errors

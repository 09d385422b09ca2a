"""Tool metadata and schema-driven argument validation.

A :class:`Tool` declares its parameters; :func:`build_arguments_model` turns
that declaration into a pydantic model, and :func:`validate_arguments` runs
an untyped argument mapping through it.  Handlers only ever see the validated
record, never the raw mapping.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    create_model,
    model_validator,
)

from mcpkit.protocol.errors import InvalidArgumentsError
from mcpkit.protocol.messages import ToolDef

ParameterType = Literal["string", "number", "integer", "boolean"]


class ToolParameter(BaseModel):
    """One named argument of a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ParameterType = "string"
    description: str = ""
    required: bool = False
    enum: tuple[str, ...] | None = Field(
        default=None, description="Allowed values (string parameters only)."
    )

    @model_validator(mode="after")
    def _check(self) -> ToolParameter:
        if not self.name.isidentifier() or self.name.startswith("_"):
            msg = f"parameter name must be a public identifier: {self.name!r}"
            raise ValueError(msg)
        if self.enum is not None:
            if self.type != "string":
                msg = f"enum is only allowed on string parameters ({self.name})"
                raise ValueError(msg)
            if not self.enum:
                msg = f"enum must list at least one value ({self.name})"
                raise ValueError(msg)
        return self

    def to_schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type}
        if self.description:
            prop["description"] = self.description
        if self.enum is not None:
            prop["enum"] = list(self.enum)
        return prop


class Tool(BaseModel):
    """A named, schema-described capability.  Immutable once built."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: tuple[ToolParameter, ...] = ()

    @model_validator(mode="after")
    def _unique_parameters(self) -> Tool:
        seen: set[str] = set()
        for param in self.parameters:
            if param.name in seen:
                msg = f"duplicate parameter {param.name!r} in tool {self.name!r}"
                raise ValueError(msg)
            seen.add(param.name)
        return self

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's arguments, as advertised by ``tools/list``."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_def(self) -> ToolDef:
        return ToolDef(name=self.name, description=self.description, input_schema=self.input_schema)


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        msg = "boolean is not a number"
        raise ValueError(msg)
    return value


_NUMERIC_GUARD = BeforeValidator(_reject_bool)

_PYTHON_TYPES: dict[str, Any] = {
    "string": str,
    "number": Annotated[float, _NUMERIC_GUARD, Field(allow_inf_nan=False)],
    "integer": Annotated[int, _NUMERIC_GUARD],
    "boolean": bool,
}


def _model_name(tool_name: str) -> str:
    words = re.split(r"[^0-9A-Za-z]+", tool_name)
    return "".join(word[:1].upper() + word[1:] for word in words if word) + "Arguments"


def build_arguments_model(tool: Tool) -> type[BaseModel]:
    """Compile *tool*'s parameters into a pydantic model.

    Enumerated strings become ``Literal`` types; optional parameters default
    to ``None``.  Unknown argument names are ignored.
    """
    fields: dict[str, Any] = {}
    for param in tool.parameters:
        annotation: Any = Literal[param.enum] if param.enum else _PYTHON_TYPES[param.type]
        if param.required:
            fields[param.name] = (annotation, Field(description=param.description))
        else:
            fields[param.name] = (
                annotation | None,
                Field(default=None, description=param.description),
            )
    return create_model(
        _model_name(tool.name),
        __config__=ConfigDict(extra="ignore", protected_namespaces=()),
        **fields,
    )


def validate_arguments(
    tool: Tool, model: type[BaseModel], arguments: dict[str, Any]
) -> BaseModel:
    """Validate *arguments* against *model*.

    Raises:
        InvalidArgumentsError: Naming the first offending parameter; every
            problem found is listed in ``data["errors"]``.
    """
    try:
        return model.model_validate(arguments)
    except ValidationError as exc:
        problems = [
            {"field": _location(err["loc"]), "reason": _reason(err)}
            for err in exc.errors(include_url=False)
        ]
        first = problems[0]
        raise InvalidArgumentsError(
            first["field"], first["reason"], tool=tool.name, errors=problems
        ) from exc


def _location(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "arguments"


def _reason(err: Any) -> str:
    if err["type"] == "missing":
        return "required parameter is missing"
    return str(err["msg"])

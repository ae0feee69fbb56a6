"""
Tool registry: binds each tool name to its argument model and handler,
validates incoming arguments and dispatches calls.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Type

from pydantic import BaseModel, ValidationError

from herald_mcp.core.config import ConfigurationError

from .errors import HandlerError, InvalidArguments, UnknownTool
from .protocol import JSON_SCHEMA_2020_12

logger = logging.getLogger("HeraldMCP.mcp.registry")


@dataclass(frozen=True)
class TextContent:
    text: str
    type: str = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolResult:
    content: List[TextContent]
    is_error: bool = False

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("ToolResult content must not be empty")

    @classmethod
    def text(cls, text: str, *, is_error: bool = False) -> "ToolResult":
        return cls(content=[TextContent(text=text)], is_error=is_error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": [block.to_dict() for block in self.content]}
        if self.is_error:
            payload["isError"] = True
        return payload


@dataclass(frozen=True)
class ToolCallEnvelope:
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[Any], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: ToolHandler
    annotations: Dict[str, bool] = field(default_factory=dict)

    @property
    def input_schema(self) -> Dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.setdefault("$schema", JSON_SCHEMA_2020_12)
        return schema

    def describe(self) -> Dict[str, Any]:
        descriptor: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.annotations:
            descriptor["annotations"] = dict(self.annotations)
        return descriptor


def _first_validation_problem(exc: ValidationError) -> tuple[str, str]:
    errors = exc.errors()
    if not errors:
        return "arguments", str(exc)
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
    return location, error.get("msg", "invalid value")


class ToolRegistry:
    """
    Name -> ToolDefinition mapping shared by every session.

    Registration is the only point where schema and handler are bound.
    Dispatch invokes a handler at most once per envelope and never retries.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        input_model: Type[BaseModel],
        handler: ToolHandler,
        annotations: Optional[Dict[str, bool]] = None,
    ) -> ToolDefinition:
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Tool name must be a non-empty string")
        name = name.strip()
        if name in self._tools:
            logger.debug("Replacing existing definition for tool '%s'", name)
        definition = ToolDefinition(
            name=name,
            description=description,
            input_model=input_model,
            handler=handler,
            annotations=dict(annotations or {}),
        )
        self._tools[name] = definition
        return definition

    def get(self, name: str) -> ToolDefinition:
        definition = self._tools.get(name)
        if definition is None:
            raise UnknownTool(name)
        return definition

    def names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [definition.describe() for definition in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))

    async def dispatch(self, envelope: ToolCallEnvelope) -> ToolResult:
        definition = self.get(envelope.tool_name)

        try:
            arguments = definition.input_model.model_validate(envelope.arguments)
        except ValidationError as exc:
            field_name, constraint = _first_validation_problem(exc)
            raise InvalidArguments(definition.name, field_name, constraint) from exc

        started = time.monotonic()
        try:
            result = await definition.handler(arguments)
        except Exception as exc:
            elapsed_ms = (time.monotonic() - started) * 1000.0
            logger.warning(
                "Tool call failed: name=%s elapsed_ms=%.1f error=%s",
                definition.name,
                elapsed_ms,
                exc,
            )
            raise HandlerError(definition.name, exc) from exc

        logger.info(
            "Tool call telemetry: name=%s outcome=success elapsed_ms=%.1f",
            definition.name,
            (time.monotonic() - started) * 1000.0,
        )
        return result

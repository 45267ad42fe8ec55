"""JSON-schema shaping of catalog tools for function-calling APIs.

Array and object parameters get concrete item/property schemas based on the
parameter name, so the model sees the same shapes the tool argument models
accept.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from excel_agent.providers.base import ProviderTool
from excel_agent.tools.catalog import TOOL_DEFINITIONS, ToolDefinition

_STRING_LIST_PARAMS = frozenset({"rows", "columns", "filters"})

_VALUE_FIELD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "field": {"type": "string"},
        "summarizeBy": {
            "type": "string",
            "enum": ["sum", "count", "average", "max", "min"],
        },
        "name": {"type": "string"},
    },
    "required": ["field"],
}

_FORMAT_PROPERTIES: dict[str, Any] = {
    "bold": {"type": "boolean"},
    "italic": {"type": "boolean"},
    "fontSize": {"type": "number"},
    "fontColor": {"type": "string"},
    "backgroundColor": {"type": "string"},
    "numberFormat": {"type": "string"},
    "horizontalAlignment": {"type": "string", "enum": ["left", "center", "right"]},
}


def parameter_schema(name: str, type: str, description: str, default: Any = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": type, "description": description}

    if type == "array":
        if name == "values":
            schema["items"] = {
                "type": "array",
                "items": {"type": "string"},
                "description": "Row of values",
            }
        elif name in _STRING_LIST_PARAMS:
            schema["items"] = {"type": "string"}
        else:
            schema["items"] = _VALUE_FIELD_SCHEMA
    elif type == "object":
        if name == "format":
            schema["properties"] = _FORMAT_PROPERTIES
        else:
            schema["additionalProperties"] = True

    if default is not None:
        schema["default"] = default
    return schema


def tool_to_provider_tool(tool: ToolDefinition) -> ProviderTool:
    properties = {
        p.name: parameter_schema(p.name, p.type, p.description, p.default)
        for p in tool.parameters
    }
    return ProviderTool(
        name=tool.name,
        description=tool.description,
        parameters={
            "type": "object",
            "properties": properties,
            "required": tool.required_parameters,
        },
    )


def tool_definitions_to_provider_tools(
    tools: Iterable[ToolDefinition] = TOOL_DEFINITIONS,
) -> list[ProviderTool]:
    return [tool_to_provider_tool(t) for t in tools]

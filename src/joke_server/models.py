from dataclasses import dataclass, field
from typing import Any, Dict

import mcp.types as types


@dataclass(frozen=True)
class JokeRecord:
    """A single joke as returned by the joke API."""

    setup: str
    punchline: str


@dataclass(frozen=True)
class ToolDescriptor:
    """Static description of a callable tool (name, description, input schema)."""

    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=dict)

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
        )

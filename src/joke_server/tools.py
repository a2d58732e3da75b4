import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, List, Tuple

import mcp.types as types
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import InvalidArgumentsError, UnknownToolError
from .models import ToolDescriptor
from .services.joke_api import JokeApiClient

logger = logging.getLogger(__name__)

GET_JOKE = "get-joke"
NO_JOKE_TEXT = "No joke found!"


class GetJokeArguments(BaseModel):
    """Arguments accepted by ``get-joke``: none."""

    model_config = ConfigDict(extra="forbid")


@lru_cache(maxsize=1)
def get_tool_descriptors() -> Tuple[ToolDescriptor, ...]:
    """Return the static tool descriptors (cached).

    Returns:
        Tuple[ToolDescriptor, ...]: exactly one descriptor, ``get-joke``.
    """
    return (
        ToolDescriptor(
            name=GET_JOKE,
            description="Get a random programming joke",
            input_schema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
    )


_ARGUMENT_MODELS: Dict[str, type[BaseModel]] = {
    GET_JOKE: GetJokeArguments,
}


def format_joke(setup: str, punchline: str) -> str:
    return f"Here's a programming joke:\n\n{setup}\n{punchline}"


def _validation_issues(error: ValidationError) -> List[Tuple[str, str]]:
    """Flatten a pydantic ValidationError into (field path, reason) pairs."""
    return [
        (".".join(str(part) for part in err["loc"]), err["msg"])
        for err in error.errors()
    ]


class ToolDispatcher:
    """Validates tool calls and runs them against the joke API."""

    def __init__(self, joke_api: JokeApiClient) -> None:
        self._joke_api = joke_api
        self._handlers: Dict[str, Callable[[BaseModel], Awaitable[str]]] = {
            GET_JOKE: self._get_joke,
        }

    def list_tools(self) -> Tuple[ToolDescriptor, ...]:
        return get_tool_descriptors()

    async def call_tool(
        self, name: str, arguments: Dict[str, Any] | None
    ) -> List[types.TextContent]:
        """Execute a tool by name.

        Args:
            name: Name of the tool to execute.
            arguments: Tool arguments; None is treated as an empty object.

        Returns:
            List[types.TextContent]: a single text content block.

        Raises:
            UnknownToolError: the tool name is not registered.
            InvalidArgumentsError: the arguments do not match the tool's schema.
            UpstreamFailureError: the joke API call failed.
        """
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Call to unknown tool: %s", name)
            raise UnknownToolError(name)

        try:
            parsed = _ARGUMENT_MODELS[name].model_validate(
                {} if arguments is None else arguments
            )
        except ValidationError as e:
            issues = _validation_issues(e)
            logger.warning("Invalid arguments for %s: %s", name, issues)
            raise InvalidArgumentsError(issues) from e

        logger.info("Executing tool: %s", name)
        text = await handler(parsed)
        return [types.TextContent(type="text", text=text)]

    async def _get_joke(self, _arguments: BaseModel) -> str:
        joke = await self._joke_api.fetch_programming_joke()
        if joke is None:
            return NO_JOKE_TEXT
        return format_joke(joke.setup, joke.punchline)

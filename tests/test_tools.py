from unittest.mock import AsyncMock, MagicMock

import pytest

from joke_server.errors import InvalidArgumentsError, UnknownToolError, UpstreamFailureError
from joke_server.models import JokeRecord
from joke_server.services.joke_api import JokeApiClient
from joke_server.tools import ToolDispatcher, get_tool_descriptors


@pytest.fixture
def mock_joke_api() -> MagicMock:
    """Mock joke API client returning a fixed joke."""
    m = MagicMock(spec=JokeApiClient)
    m.fetch_programming_joke = AsyncMock(return_value=JokeRecord(setup="S", punchline="P"))
    return m


@pytest.fixture
def dispatcher(mock_joke_api: MagicMock) -> ToolDispatcher:
    return ToolDispatcher(mock_joke_api)


def test_list_tools_has_only_get_joke(dispatcher: ToolDispatcher) -> None:
    """Listing tools returns exactly one descriptor, get-joke, with no required fields."""
    tools = dispatcher.list_tools()
    assert len(tools) == 1
    assert tools[0].name == "get-joke"
    assert tools[0].description == "Get a random programming joke"
    assert tools[0].input_schema["required"] == []
    assert tools[0].input_schema["properties"] == {}
    assert tools == get_tool_descriptors()


def test_descriptor_converts_to_mcp_tool() -> None:
    tool = get_tool_descriptors()[0].to_mcp_tool()
    assert tool.name == "get-joke"
    assert tool.inputSchema == {"type": "object", "properties": {}, "required": []}


@pytest.mark.asyncio
async def test_call_get_joke_formats_joke(dispatcher: ToolDispatcher) -> None:
    """get-joke with {} yields the two-line joke after the intro line."""
    content = await dispatcher.call_tool("get-joke", {})
    assert len(content) == 1
    assert content[0].type == "text"
    assert content[0].text == "Here's a programming joke:\n\nS\nP"


@pytest.mark.asyncio
async def test_call_get_joke_accepts_missing_arguments(dispatcher: ToolDispatcher) -> None:
    content = await dispatcher.call_tool("get-joke", None)
    assert content[0].text == "Here's a programming joke:\n\nS\nP"


@pytest.mark.asyncio
async def test_call_get_joke_without_joke(dispatcher: ToolDispatcher, mock_joke_api: MagicMock) -> None:
    """When the API has no joke the result is the fixed fallback text, not an error."""
    mock_joke_api.fetch_programming_joke.return_value = None
    content = await dispatcher.call_tool("get-joke", {})
    assert content[0].text == "No joke found!"


@pytest.mark.asyncio
async def test_call_get_joke_rejects_extra_fields(dispatcher: ToolDispatcher, mock_joke_api: MagicMock) -> None:
    """Unexpected fields fail with InvalidArguments naming each field."""
    with pytest.raises(InvalidArgumentsError) as exc_info:
        await dispatcher.call_tool("get-joke", {"x": 1, "y": 2})
    paths = [path for path, _ in exc_info.value.issues]
    assert sorted(paths) == ["x", "y"]
    assert str(exc_info.value).startswith("Invalid arguments: ")
    assert "x: " in str(exc_info.value)
    mock_joke_api.fetch_programming_joke.assert_not_called()


@pytest.mark.asyncio
async def test_call_get_joke_rejects_non_object(dispatcher: ToolDispatcher) -> None:
    with pytest.raises(InvalidArgumentsError):
        await dispatcher.call_tool("get-joke", ["not", "an", "object"])  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_call_unknown_tool(dispatcher: ToolDispatcher, mock_joke_api: MagicMock) -> None:
    """Unknown tool names fail with UnknownTool carrying the name."""
    with pytest.raises(UnknownToolError) as exc_info:
        await dispatcher.call_tool("get-pun", {})
    assert exc_info.value.name == "get-pun"
    assert str(exc_info.value) == "Unknown tool: get-pun"
    mock_joke_api.fetch_programming_joke.assert_not_called()


@pytest.mark.asyncio
async def test_call_get_joke_upstream_failure(dispatcher: ToolDispatcher, mock_joke_api: MagicMock) -> None:
    """Upstream failures propagate unchanged, with a single attempt."""
    mock_joke_api.fetch_programming_joke.side_effect = UpstreamFailureError("unreachable")
    with pytest.raises(UpstreamFailureError):
        await dispatcher.call_tool("get-joke", {})
    mock_joke_api.fetch_programming_joke.assert_awaited_once()

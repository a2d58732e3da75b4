import logging
from typing import AsyncIterator
from urllib.parse import urlencode
from uuid import uuid4

import anyio
import mcp.types as types
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.message import SessionMessage
from pydantic import ValidationError

from .errors import MalformedMessageError, SessionNotFoundError

logger = logging.getLogger(__name__)


class SseSessionTransport:
    """One MCP session carried over an SSE stream plus POSTed messages.

    ``read_stream`` / ``write_stream`` are handed to the MCP server. Messages
    POSTed by the client are parsed and pushed into ``read_stream``; whatever
    the server writes to ``write_stream`` comes out of ``outbound_messages()``
    as JSON, ready to be sent as SSE ``message`` events.
    """

    def __init__(self, messages_path: str, session_id: str | None = None) -> None:
        self.session_id = session_id or uuid4().hex
        self._messages_path = messages_path
        self._closed = False

        self._inbound_writer: MemoryObjectSendStream[SessionMessage | Exception]
        self.read_stream: MemoryObjectReceiveStream[SessionMessage | Exception]
        self._inbound_writer, self.read_stream = anyio.create_memory_object_stream(0)

        self.write_stream: MemoryObjectSendStream[SessionMessage]
        self._outbound_reader: MemoryObjectReceiveStream[SessionMessage]
        self.write_stream, self._outbound_reader = anyio.create_memory_object_stream(0)

    @property
    def endpoint_uri(self) -> str:
        """URI the client must POST messages to, announced in the ``endpoint`` event."""
        return f"{self._messages_path}?{urlencode({'sessionId': self.session_id})}"

    @property
    def closed(self) -> bool:
        return self._closed

    async def handle_post_message(self, body: bytes) -> None:
        """Parse a POSTed JSON-RPC message and forward it to the MCP server.

        Raises:
            SessionNotFoundError: the session has been closed.
            MalformedMessageError: the body is not a JSON-RPC message.
        """
        if self._closed:
            raise SessionNotFoundError(self.session_id)
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as e:
            logger.warning("Could not parse message for session %s: %s", self.session_id, e)
            raise MalformedMessageError("Could not parse message") from e

        try:
            await self._inbound_writer.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise SessionNotFoundError(self.session_id) from e

    async def outbound_messages(self) -> AsyncIterator[str]:
        """Yield each message written by the MCP server, serialized to JSON."""
        async for session_message in self._outbound_reader:
            yield session_message.message.model_dump_json(by_alias=True, exclude_none=True)

    async def aclose(self) -> None:
        """Close every stream of the session. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._inbound_writer.aclose()
        await self.read_stream.aclose()
        await self.write_stream.aclose()
        await self._outbound_reader.aclose()
        logger.debug("Transport closed for session %s", self.session_id)

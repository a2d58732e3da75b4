import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator

import anyio
from mcp.server.lowlevel import Server
from sse_starlette.sse import ServerSentEvent

from .errors import SessionNotFoundError
from .protocol import build_mcp_server
from .services.joke_api import JokeApiClient, get_joke_api_client
from .sessions import SessionRegistry
from .settings import Settings, get_settings
from .tools import ToolDispatcher
from .transport import SseSessionTransport

logger = logging.getLogger(__name__)


@dataclass
class ServerContext:
    """Process state owned by one app instance: sessions, hit counter, MCP server."""

    joke_api: JokeApiClient
    dispatcher: ToolDispatcher
    mcp_server: Server
    messages_path: str = "/messages"
    sessions: SessionRegistry = field(default_factory=SessionRegistry)
    hit_count: int = 0

    def record_hit(self) -> int:
        self.hit_count += 1
        return self.hit_count

    def open_transport(self) -> SseSessionTransport:
        return SseSessionTransport(self.messages_path)

    async def run_session(self, transport: SseSessionTransport) -> None:
        """Run the MCP server on ``transport`` until its inbound stream ends."""
        try:
            await self.mcp_server.run(
                transport.read_stream,
                transport.write_stream,
                self.mcp_server.create_initialization_options(),
            )
        except Exception as e:
            logger.exception("MCP session %s failed: %s", transport.session_id, e)

    async def session_events(
        self, transport: SseSessionTransport
    ) -> AsyncIterator[ServerSentEvent]:
        """SSE events for one session, from ``endpoint`` to disconnect.

        The session is registered before the ``endpoint`` event goes out, and
        unregistered and closed when the stream ends for any reason.
        """
        self.sessions.register(transport.session_id, transport)
        runner = asyncio.create_task(self.run_session(transport))
        try:
            yield ServerSentEvent(event="endpoint", data=transport.endpoint_uri)
            async for payload in transport.outbound_messages():
                yield ServerSentEvent(event="message", data=payload)
        finally:
            self.sessions.unregister(transport.session_id)
            runner.cancel()
            with anyio.CancelScope(shield=True):
                with contextlib.suppress(asyncio.CancelledError):
                    await runner
            await transport.aclose()
            logger.info("SSE connection closed: %s", transport.session_id)

    async def deliver(self, session_id: str | None, body: bytes) -> None:
        """Count the hit, then forward ``body`` into the session's transport.

        Raises:
            SessionNotFoundError: no open session has this id.
            MalformedMessageError: the body is not a JSON-RPC message.
        """
        hits = self.record_hit()
        logger.debug("Message hit #%d for session %s", hits, session_id)
        transport = self.sessions.lookup(session_id)
        if transport is None:
            raise SessionNotFoundError(session_id)
        await transport.handle_post_message(body)


def create_server_context(
    joke_api: JokeApiClient | None = None, settings: Settings | None = None
) -> ServerContext:
    """Wire the joke API client, dispatcher and MCP server into a fresh context."""
    settings = settings or get_settings()
    joke_api = joke_api or get_joke_api_client()
    dispatcher = ToolDispatcher(joke_api)
    return ServerContext(
        joke_api=joke_api,
        dispatcher=dispatcher,
        mcp_server=build_mcp_server(dispatcher),
        messages_path=settings.messages_path,
    )

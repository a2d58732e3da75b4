import logging
import sys
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse
from sse_starlette.sse import EventSourceResponse

from .context import ServerContext, create_server_context
from .errors import MalformedMessageError, SessionNotFoundError
from .services.joke_api import JokeApiClient
from .settings import Settings, get_settings


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("joke_server")
    if logger.handlers:
        return logger.getChild("server")

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger.getChild("server")


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


LOGGER = setup_server_logging(get_settings().log_level)

NO_TRANSPORT_TEXT = "No transport found for sessionId"

STATUS_PAGE = """
<!DOCTYPE html>
<html>
<head>
  <title>MCP Joke Server</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 20px; }
    #output { margin-top: 20px; padding: 10px; border: 1px solid #ccc; white-space: pre-line; }
  </style>
</head>
<body>
  <h1>MCP Joke Server</h1>
  <p>Server is running correctly!</p>
  <button id="connectBtn">Connect to SSE</button>
  <div id="output">Connection status will appear here...</div>

  <script>
    document.getElementById('connectBtn').addEventListener('click', () => {
      const output = document.getElementById('output');
      output.textContent = 'Connecting to SSE...';

      const evtSource = new EventSource('/sse');

      evtSource.onopen = () => {
        output.textContent += '\\nConnected to SSE!';
      };

      evtSource.onerror = (err) => {
        output.textContent += '\\nError with SSE connection: ' + JSON.stringify(err);
        evtSource.close();
      };

      evtSource.addEventListener('endpoint', (event) => {
        output.textContent += '\\nEndpoint: ' + event.data;
      });

      evtSource.onmessage = (event) => {
        output.textContent += '\\nReceived: ' + event.data;
      };
    });
  </script>
</body>
</html>
"""


def get_server_context(request: Request) -> ServerContext:
    """FastAPI dependency returning the context owned by the running app."""
    return request.app.state.context


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup; close the joke API client on shutdown."""
    context: ServerContext = app.state.context
    LOGGER.info("Joke MCP Server ready; joke source %s", context.joke_api.url)

    yield

    LOGGER.info("Shutting down (open sessions=%d)...", len(context.sessions))
    await context.joke_api.close()


def create_app(
    joke_api: JokeApiClient | None = None, settings: Settings | None = None
) -> FastAPI:
    """Build the FastAPI app with a fresh server context."""
    settings = settings or get_settings()
    app = FastAPI(
        title="MCP Joke Server",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.context = create_server_context(joke_api, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins_list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_class=HTMLResponse)
    async def status_page() -> str:
        return STATUS_PAGE

    @app.get("/api/test")
    async def api_test() -> dict[str, Any]:
        """Liveness probe used by the status page and clients."""
        return {"status": "ok", "message": "Joke server is working!"}

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check for load balancers and monitoring."""
        return {"status": "ok"}

    @app.get("/sse")
    async def sse(context: ServerContext = Depends(get_server_context)) -> EventSourceResponse:
        """Open an MCP session.

        The first event is ``endpoint``, whose data is the URI to POST messages
        to; every server message follows as a ``message`` event.
        """
        transport = context.open_transport()
        LOGGER.info("SSE connection opened: %s", transport.session_id)
        return EventSourceResponse(
            context.session_events(transport),
            ping=settings.sse_ping_seconds,
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post(settings.messages_path)
    async def post_message(
        request: Request,
        session_id: str | None = Query(default=None, alias="sessionId"),
        context: ServerContext = Depends(get_server_context),
    ) -> PlainTextResponse:
        """Deliver one JSON-RPC message to an open session.

        The response travels back on the session's SSE stream; this endpoint
        only acknowledges receipt.
        """
        body = await request.body()
        try:
            await context.deliver(session_id, body)
        except SessionNotFoundError:
            LOGGER.warning("Message for unknown session %s", session_id)
            return PlainTextResponse(NO_TRANSPORT_TEXT, status_code=400)
        except MalformedMessageError as e:
            return PlainTextResponse(str(e), status_code=400)
        return PlainTextResponse("Accepted", status_code=202)

    @app.get("/messages/hit-count")
    async def hit_count(context: ServerContext = Depends(get_server_context)) -> dict[str, int]:
        return {"hitCount": context.hit_count}

    return app


app = create_app()


def main() -> None:
    """Run the server with uvicorn on the configured host and port."""
    settings = get_settings()
    LOGGER.info("Joke MCP Server starting on http://localhost:%d", settings.port)
    try:
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    except Exception as e:
        LOGGER.exception("Fatal error in main(): %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()

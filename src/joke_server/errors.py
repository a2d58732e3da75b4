from typing import Sequence, Tuple


class JokeServerError(Exception):
    """Base class for errors raised by the joke server."""


class UnknownToolError(JokeServerError):
    """A tool call named a tool that is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArgumentsError(JokeServerError):
    """Tool arguments did not match the tool's input schema.

    ``issues`` holds one ``(path, reason)`` pair per failing field.
    """

    def __init__(self, issues: Sequence[Tuple[str, str]]) -> None:
        self.issues = list(issues)
        detail = ", ".join(f"{path}: {reason}" for path, reason in self.issues)
        super().__init__(f"Invalid arguments: {detail}")


class UpstreamFailureError(JokeServerError):
    """The joke API was unreachable or answered with something unusable."""


class SessionNotFoundError(JokeServerError):
    """A message was addressed to an unknown or closed session."""

    def __init__(self, session_id: str | None) -> None:
        self.session_id = session_id
        super().__init__(f"No transport found for sessionId {session_id!r}")


class SessionAlreadyRegisteredError(JokeServerError):
    """A session id was registered twice."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session already registered: {session_id}")


class MalformedMessageError(JokeServerError):
    """A posted body is not a valid JSON-RPC message."""

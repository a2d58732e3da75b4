import logging
from typing import Dict, Iterator

from .errors import SessionAlreadyRegisteredError
from .transport import SseSessionTransport

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps session ids to their open transports.

    Only used from the event loop thread; none of the operations suspend, so no
    lock is needed.
    """

    def __init__(self) -> None:
        self._transports: Dict[str, SseSessionTransport] = {}

    def register(self, session_id: str, transport: SseSessionTransport) -> None:
        """Store ``transport`` under ``session_id``.

        Raises:
            SessionAlreadyRegisteredError: the id is already registered; the
                existing entry is kept.
        """
        if session_id in self._transports:
            logger.error("Rejected duplicate session id %s", session_id)
            raise SessionAlreadyRegisteredError(session_id)
        self._transports[session_id] = transport
        logger.info("Session registered: %s (open=%d)", session_id, len(self._transports))

    def unregister(self, session_id: str) -> SseSessionTransport | None:
        """Remove and return the transport for ``session_id``; no-op if absent."""
        transport = self._transports.pop(session_id, None)
        if transport is not None:
            logger.info("Session unregistered: %s (open=%d)", session_id, len(self._transports))
        return transport

    def lookup(self, session_id: str | None) -> SseSessionTransport | None:
        """Return the transport for ``session_id``, or None."""
        if session_id is None:
            return None
        return self._transports.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._transports

    def __len__(self) -> int:
        return len(self._transports)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._transports))

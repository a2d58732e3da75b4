import logging
from typing import Any

import httpx

from ..errors import UpstreamFailureError
from ..models import JokeRecord
from ..settings import get_settings

logger = logging.getLogger(__name__)


def decode_joke_payload(payload: Any) -> JokeRecord | None:
    """Decode the joke API's response body.

    The API answers with a list holding one ``{setup, punchline}`` object. An
    empty (or null) list means there is no joke; anything else that does not
    have that shape is a malformed response.

    Raises:
        UpstreamFailureError: when the payload is malformed.
    """
    if payload is None:
        return None
    if not isinstance(payload, list):
        raise UpstreamFailureError(
            f"Unexpected joke API payload: expected a list, got {type(payload).__name__}"
        )
    if not payload or payload[0] is None:
        return None

    first = payload[0]
    if not isinstance(first, dict):
        raise UpstreamFailureError("Unexpected joke API payload: joke is not an object")
    setup = first.get("setup")
    punchline = first.get("punchline")
    if not isinstance(setup, str) or not isinstance(punchline, str):
        raise UpstreamFailureError(
            "Unexpected joke API payload: joke is missing setup or punchline"
        )
    return JokeRecord(setup=setup, punchline=punchline)


class JokeApiClient:
    """Async client for the Official Joke API."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client. Idempotent."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Joke API client closed")

    async def fetch_programming_joke(self) -> JokeRecord | None:
        """Fetch one random programming joke.

        Returns:
            JokeRecord | None: the joke, or None when the API returned no joke.

        Raises:
            UpstreamFailureError: on timeout, connection failure, non-2xx status,
                invalid JSON or a malformed joke.
        """
        client = self._get_client()
        try:
            response = await client.get(self._url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error("Joke API request timed out: %s", e)
            raise UpstreamFailureError(f"Joke API request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error("Joke API returned status %s", e.response.status_code)
            raise UpstreamFailureError(
                f"Joke API returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Joke API request failed: %s", e)
            raise UpstreamFailureError(f"Joke API request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Joke API returned invalid JSON: %s", e)
            raise UpstreamFailureError("Joke API returned invalid JSON") from e

        return decode_joke_payload(payload)


def get_joke_api_client() -> JokeApiClient:
    """Build a joke API client from settings."""
    settings = get_settings()
    return JokeApiClient(
        url=settings.joke_api_url,
        timeout_seconds=settings.joke_api_timeout_seconds,
    )

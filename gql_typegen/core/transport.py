"""Transports carry ``{operationName, query, variables}`` payloads to a dispatcher.

HttpTransport talks to a remote endpoint with httpx; LocalTransport calls
an in-process RequestDispatcher through the same JSON bridge.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from .errors import NetworkError

if TYPE_CHECKING:
    from .dispatcher import RequestDispatcher

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Protocol for request transports."""

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send one request payload and return the decoded ``{data, errors}`` response.

        Raises:
            NetworkError: If the round trip cannot be completed
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the transport."""
        ...


class HttpTransport:
    """Posts requests to a GraphQL endpoint over HTTP.

    Examples:
        transport = HttpTransport("https://api.example.com/graphql")
        transport = HttpTransport(url, headers={"X-Request-Source": "batch"}, timeout=10.0)

        # Bring your own client (e.g. with httpx.MockTransport in tests)
        transport = HttpTransport(url, client=httpx.AsyncClient(transport=mock))
    """

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            url: GraphQL endpoint URL
            headers: Extra headers sent with every request
            timeout: Request timeout in seconds
            client: Optional pre-configured httpx client; closed by close()
        """
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        self.headers.update(headers or {})
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(self.url, json=payload, headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Request %s to %s failed: %s", payload.get("operationName"), self.url, e)
            raise NetworkError(f"Request to {self.url} failed: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise NetworkError(f"Response from {self.url} is not valid JSON") from e
        if not isinstance(result, dict):
            raise NetworkError(f"Response from {self.url} is not a JSON object")
        return result

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


class LocalTransport:
    """Sends requests to an in-process dispatcher.

    Payloads and responses go through a JSON round trip, so values that
    could not cross a real wire fail here as well.
    """

    def __init__(self, dispatcher: "RequestDispatcher"):
        self.dispatcher = dispatcher

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = self._round_trip(payload, "Request")
        response = await self.dispatcher.handle(request)
        return self._round_trip(response, "Response")

    @staticmethod
    def _round_trip(value: dict[str, Any], what: str) -> dict[str, Any]:
        try:
            return json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise NetworkError(f"{what} could not be encoded as JSON: {e}") from e

    async def close(self):
        pass

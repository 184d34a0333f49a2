"""Tests for the HTTP and in-process transports."""

import json

import httpx
import pytest

from gql_typegen.core.errors import NetworkError
from gql_typegen.core.transport import HttpTransport, LocalTransport, Transport

URL = "https://api.example.com/graphql"
PAYLOAD = {"operationName": "ALL_USERS", "query": "query ALL_USERS { users { name } }", "variables": {}}


def http_transport(handler, **kwargs) -> HttpTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpTransport(URL, client=client, **kwargs)


class TestHttpTransport:
    """Tests for HttpTransport against a mocked endpoint."""

    @pytest.mark.asyncio
    async def test_posts_payload(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"users": []}, "errors": []})

        transport = http_transport(handler, headers={"X-Request-Source": "tests"})
        assert await transport.send(PAYLOAD) == {"data": {"users": []}, "errors": []}
        assert requests[0].method == "POST"
        assert str(requests[0].url) == URL
        assert json.loads(requests[0].content) == PAYLOAD
        assert requests[0].headers["X-Request-Source"] == "tests"
        assert requests[0].headers["Content-Type"] == "application/json"
        await transport.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        transport = http_transport(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(NetworkError, match="failed"):
            await transport.send(PAYLOAD)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError, match="connection refused"):
            await http_transport(handler).send(PAYLOAD)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        transport = http_transport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(NetworkError, match="not valid JSON"):
            await transport.send(PAYLOAD)

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        transport = http_transport(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(NetworkError, match="not a JSON object"):
            await transport.send(PAYLOAD)

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        transport = http_transport(lambda request: httpx.Response(200, json={"data": {}}))
        await transport.send(PAYLOAD)
        await transport.close()
        assert transport._client is None

    def test_satisfies_protocol(self):
        assert isinstance(HttpTransport(URL), Transport)


class TestLocalTransport:
    """Tests for the in-process transport."""

    @pytest.mark.asyncio
    async def test_round_trip(self, dispatcher, artifacts):
        transport = LocalTransport(dispatcher)
        response = await transport.send({
            "operationName": "ALL_USERS",
            "query": artifacts.operation("ALL_USERS").document,
            "variables": {},
        })
        assert response == {"data": {"users": [{"name": "A"}, {"name": "B"}]}, "errors": []}
        assert isinstance(transport, Transport)

    @pytest.mark.asyncio
    async def test_unencodable_request(self, dispatcher):
        with pytest.raises(NetworkError, match="Request could not be encoded"):
            await LocalTransport(dispatcher).send({"operationName": "ALL_USERS", "variables": {"x": object()}})


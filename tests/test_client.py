"""Tests for GraphClient.

Covers status-to-exception mapping, the single token refresh on 401,
nextLink pagination and $batch request/response handling. The network
is never touched: the low-level request methods are mocked.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from autopilot_cleanup.api.auth import TokenManager
from autopilot_cleanup.api.client import (
    MAX_BATCH_REQUESTS,
    BatchRequest,
    BatchResponse,
    GraphClient,
    PaginationConfig,
)
from autopilot_cleanup.api.exceptions import (
    APIError,
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TokenExpiredError,
    ValidationError,
)


@pytest.fixture
def token_manager():
    manager = MagicMock(spec=TokenManager)
    manager.get_token = AsyncMock(return_value="token")
    return manager


@pytest.fixture
def client(token_manager, monkeypatch):
    monkeypatch.delenv("GRAPH_BASE_URL", raising=False)
    return GraphClient(token_manager)


class TestConstruction:
    """Base URL handling."""

    def test_default_base_url(self, client):
        assert client.base_url == "https://graph.microsoft.com/beta"

    def test_trailing_slash_removed(self, token_manager):
        client = GraphClient(token_manager, base_url="https://graph.microsoft.com/v1.0/")
        assert client.base_url == "https://graph.microsoft.com/v1.0"

    def test_invalid_base_url_rejected(self, token_manager):
        with pytest.raises(ConfigurationError):
            GraphClient(token_manager, base_url="graph.microsoft.com")

    def test_absolute_next_link_passes_through(self, client):
        link = "https://graph.microsoft.com/beta/deviceManagement/managedDevices?$skiptoken=abc"
        assert client._build_url(link) == link
        assert client._build_url("/me") == "https://graph.microsoft.com/beta/me"

    async def test_request_outside_context_raises(self, client):
        with pytest.raises(RuntimeError):
            await client._request("GET", "/me")


class TestErrorMapping:
    """_create_api_error picks the exception type from the status."""

    def test_401_is_token_expired(self, client):
        assert isinstance(client._create_api_error(401, "GET", "/x", ""), TokenExpiredError)

    def test_404_is_not_found(self, client):
        error = client._create_api_error(404, "DELETE", "/x/1", "")
        assert isinstance(error, NotFoundError)
        assert error.status_code == 404

    def test_429_carries_retry_after(self, client):
        error = client._create_api_error(429, "POST", "/sync", "", retry_after="120")
        assert isinstance(error, RateLimitError)
        assert error.retry_after == 120
        assert error.status_code == 429

    def test_429_without_header_uses_default(self, client):
        error = client._create_api_error(429, "POST", "/sync", "", retry_after=None)
        assert error.retry_after == 60

    @pytest.mark.parametrize("status", [400, 422])
    def test_validation_statuses(self, client, status):
        error = client._create_api_error(status, "POST", "/$batch", "bad")
        assert isinstance(error, ValidationError)
        assert error.status_code == status

    def test_5xx_is_server_error(self, client):
        error = client._create_api_error(503, "GET", "/x", "")
        assert isinstance(error, ServerError)
        assert error.recoverable

    def test_other_status_is_plain_api_error(self, client):
        error = client._create_api_error(403, "GET", "/x", "forbidden")
        assert type(error) is APIError
        assert error.status_code == 403


class TestAuthRefresh:
    """One token refresh on 401, nothing else is retried."""

    async def test_refreshes_once_on_401(self, client, token_manager):
        client._request = AsyncMock(side_effect=[TokenExpiredError(), {"ok": True}])

        result = await client.get("/deviceManagement/managedDevices")

        assert result == {"ok": True}
        assert client._request.call_count == 2
        token_manager.invalidate.assert_called_once()

    async def test_second_401_propagates(self, client):
        client._request = AsyncMock(side_effect=[TokenExpiredError(), TokenExpiredError()])

        with pytest.raises(TokenExpiredError):
            await client.get("/x")

    async def test_server_error_not_retried(self, client):
        client._request = AsyncMock(side_effect=ServerError("boom", status_code=502))

        with pytest.raises(ServerError):
            await client.get("/x")

        assert client._request.call_count == 1


class TestPagination:
    """Following @odata.nextLink."""

    async def test_follows_next_link_until_exhausted(self, client):
        client.get = AsyncMock(side_effect=[
            {"value": [{"id": "1"}, {"id": "2"}], "@odata.nextLink": "https://graph/next1"},
            {"value": [{"id": "3"}], "@odata.nextLink": "https://graph/next2"},
            {"value": [{"id": "4"}]},
        ])

        items = await client.fetch_all("/devices", PaginationConfig(page_size=2))

        assert [i["id"] for i in items] == ["1", "2", "3", "4"]
        first, second, third = client.get.call_args_list
        assert first.args == ("/devices",)
        assert first.kwargs["params"] == {"$top": 2}
        assert second.args == ("https://graph/next1",)
        assert third.args == ("https://graph/next2",)

    async def test_empty_collection(self, client):
        client.get = AsyncMock(return_value={"value": []})

        assert await client.fetch_all("/devices") == []

    async def test_max_pages_stops_early(self, client):
        client.get = AsyncMock(return_value={"value": [{"id": "x"}], "@odata.nextLink": "https://graph/n"})

        items = await client.fetch_all("/devices", PaginationConfig(max_pages=2))

        assert len(items) == 2
        assert client.get.call_count == 2

    async def test_transport_error_propagates(self, client):
        client.get = AsyncMock(side_effect=[
            {"value": [{"id": "1"}], "@odata.nextLink": "https://graph/next"},
            ServerError("down", status_code=503),
        ])

        with pytest.raises(ServerError):
            await client.fetch_all("/devices")


class TestBatch:
    """POST /$batch."""

    def test_request_serialization(self):
        request = BatchRequest(id="SN1", method="DELETE", url="/deviceManagement/x/1")
        assert request.to_dict() == {"id": "SN1", "method": "DELETE", "url": "/deviceManagement/x/1"}

    def test_response_error_message(self):
        response = BatchResponse(id="SN1", status=400, body={"error": {"code": "BadRequest", "message": "nope"}})
        assert not response.ok
        assert response.error_message == "nope"
        assert BatchResponse(id="SN2", status=204).ok

    async def test_posts_envelope_and_parses_responses(self, client):
        client.post = AsyncMock(return_value={
            "responses": [
                {"id": "SN2", "status": 404, "body": {"error": {"message": "gone"}}},
                {"id": "SN1", "status": 200, "body": None},
            ]
        })
        requests = [
            BatchRequest(id="SN1", method="DELETE", url="/a/1"),
            BatchRequest(id="SN2", method="DELETE", url="/a/2"),
        ]

        responses = await client.batch(requests)

        client.post.assert_awaited_once()
        assert client.post.call_args.args[0] == "/$batch"
        assert client.post.call_args.kwargs["json_body"] == {
            "requests": [r.to_dict() for r in requests]
        }
        assert [(r.id, r.status) for r in responses] == [("SN2", 404), ("SN1", 200)]
        assert responses[1].body == {}

    async def test_rejects_empty_batch(self, client):
        with pytest.raises(ValidationError):
            await client.batch([])

    async def test_rejects_oversized_batch(self, client):
        requests = [
            BatchRequest(id=str(i), method="DELETE", url=f"/a/{i}")
            for i in range(MAX_BATCH_REQUESTS + 1)
        ]
        with pytest.raises(ValidationError):
            await client.batch(requests)

    async def test_rejects_duplicate_ids(self, client):
        requests = [
            BatchRequest(id="SN1", method="DELETE", url="/a/1"),
            BatchRequest(id="SN1", method="DELETE", url="/a/2"),
        ]
        with pytest.raises(ValidationError):
            await client.batch(requests)

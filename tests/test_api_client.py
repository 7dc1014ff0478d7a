"""
Tests for the node API client against a mocked HTTP transport
"""
import json

import httpx
import pytest

from netorch.api_client import ApiClient
from netorch.errors import ApiClientError
from netorch.readiness import NodeReachability, ReadinessNode


def client_for(handler) -> ApiClient:
    return ApiClient("http://node.test:8080", transport=httpx.MockTransport(handler))


class TestApiClient:
    """Test ApiClient"""

    def test_consensus_info(self):
        def handler(request):
            assert request.url.path == "/cryptarchia/info"
            return httpx.Response(200, json={"height": 12, "slot": 30, "tip": "ab"})

        info = client_for(handler).consensus_info()
        assert (info.height, info.slot, info.tip) == (12, 30, "ab")

    def test_network_info(self):
        client = client_for(lambda request: httpx.Response(200, json={"n_peers": 3, "n_connections": 4}))
        info = client.network_info()
        assert info.n_peers == 3
        assert info.n_connections == 4

    def test_submit_transaction_posts_json(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200)

        assert client_for(handler).submit_transaction({"nonce": 1}) is None
        assert seen == {"method": "POST", "path": "/mempool/add/tx", "body": {"nonce": 1}}

    def test_publish_blob(self):
        client = client_for(lambda request: httpx.Response(200, json={"accepted": True}))
        assert client.publish_blob({"data": "00"}) == {"accepted": True}

    def test_http_error_status(self):
        client = client_for(lambda request: httpx.Response(503))
        with pytest.raises(ApiClientError, match="returned 503"):
            client.consensus_info()

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ApiClientError, match="failed"):
            client_for(handler).network_info()

    def test_invalid_json(self):
        client = client_for(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(ApiClientError, match="invalid JSON"):
            client.consensus_info()

    def test_missing_fields(self):
        client = client_for(lambda request: httpx.Response(200, json={"slot": 1}))
        with pytest.raises(ApiClientError, match="unexpected consensus info"):
            client.consensus_info()

    def test_for_port(self):
        client = ApiClient.for_port(18080, host="10.0.0.5")
        assert client.base_url == "http://10.0.0.5:18080"
        client.close()

    def test_closed_client_raises_api_error(self):
        client = client_for(lambda request: httpx.Response(200, json={"height": 1}))
        client.close()

        assert client.closed
        with pytest.raises(ApiClientError, match="client is closed"):
            client.consensus_info()
        with pytest.raises(ApiClientError, match="client is closed"):
            client.submit_transaction({"nonce": 0})

    def test_closed_client_is_a_node_error_in_readiness(self):
        """A stopped node's client shows up as that node's error, not a crash"""
        client = client_for(lambda request: httpx.Response(200, json={"height": 1}))
        client.close()

        statuses = NodeReachability([ReadinessNode("validator-0", client)]).collect()

        assert len(statuses) == 1
        assert statuses[0].value is None
        assert "client is closed" in statuses[0].error

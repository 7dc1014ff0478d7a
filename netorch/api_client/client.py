"""
HTTP client for a node's status and submission API
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ApiClientError
from ..models import ConsensusInfo, NetworkInfo

logger = logging.getLogger(__name__)

CONSENSUS_INFO_PATH = "/cryptarchia/info"
NETWORK_INFO_PATH = "/network/info"
SUBMIT_TX_PATH = "/mempool/add/tx"
PUBLISH_BLOB_PATH = "/da/blobs"

DEFAULT_REQUEST_TIMEOUT = 10.0


class ApiClient:
    """Thin wrapper over one node's HTTP API"""

    def __init__(self, base_url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    @classmethod
    def for_port(cls, port: int, host: str = "127.0.0.1", **kwargs) -> "ApiClient":
        return cls(f"http://{host}:{port}", **kwargs)

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        # node control closes a stopped node's client while runs still hold it
        if self._client.is_closed:
            raise ApiClientError(f"{method} {self.base_url}{path} failed: client is closed")
        try:
            response = self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ApiClientError(
                f"{method} {self.base_url}{path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ApiClientError(f"{method} {self.base_url}{path} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiClientError(f"{method} {self.base_url}{path} returned invalid JSON") from e

    def consensus_info(self) -> ConsensusInfo:
        data = self._request("GET", CONSENSUS_INFO_PATH)
        try:
            return ConsensusInfo(
                height=int(data["height"]),
                slot=data.get("slot"),
                tip=data.get("tip"),
            )
        except (TypeError, KeyError, ValueError) as e:
            raise ApiClientError(f"unexpected consensus info from {self.base_url}: {data!r}") from e

    def network_info(self) -> NetworkInfo:
        data = self._request("GET", NETWORK_INFO_PATH)
        try:
            return NetworkInfo(
                n_peers=int(data["n_peers"]),
                n_connections=data.get("n_connections"),
            )
        except (TypeError, KeyError, ValueError) as e:
            raise ApiClientError(f"unexpected network info from {self.base_url}: {data!r}") from e

    def submit_transaction(self, tx: Dict[str, Any]) -> Any:
        return self._request("POST", SUBMIT_TX_PATH, json=tx)

    def publish_blob(self, blob: Dict[str, Any]) -> Any:
        return self._request("POST", PUBLISH_BLOB_PATH, json=blob)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        return f"ApiClient({self.base_url})"

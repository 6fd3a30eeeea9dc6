import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import hashlib

import httpx
import pytest

from synchealth.core.config import Settings
from synchealth.main import create_app
from synchealth.rpc.client import HubConnector, HubRpcClient
from synchealth.schemas.hub import ContactInfo, GossipAddress, Message
from synchealth.sync.replica import InMemoryReplica
from synchealth.sync.time_prefix import to_hub_time

DAY = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def day() -> datetime:
    return DAY


@pytest.fixture
def make_message():
    """Build messages at an offset (in seconds) from the start of DAY."""

    def _make(offset_sec: int, seed: str = "", msg_type: str = "MESSAGE_TYPE_CAST_ADD") -> Message:
        timestamp = to_hub_time(DAY) + offset_sec
        digest = hashlib.sha1(f"{timestamp}:{seed}".encode("utf-8")).hexdigest()
        return Message(hash=digest, fid=1, timestamp=timestamp, type=msg_type)

    return _make


@pytest.fixture
def hub_network():
    return HubNetwork()


@pytest.fixture
def settings_factory(tmp_path):
    def _make(**overrides) -> Settings:
        values = {
            "SYNC_HEALTH_START_TIME": "00:00:00",
            "SYNC_HEALTH_STOP_TIME": "00:00:10",
            "MAX_NUM_PEERS": 10,
            "PRIMARY_NODE": "10.0.0.1:2281",
            "SYNC_HEALTH_OUTFILE": str(tmp_path / "health.log"),
            "RPC_TIMEOUT_SEC": 2.0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


class HubNetwork:
    """Routes hub addresses to in-process FastAPI replicas."""

    def __init__(self) -> None:
        self.replicas: dict[str, InMemoryReplica] = {}
        self.unready: set[str] = set()
        self.insecure_only: set[str] = set()
        self.broken: set[str] = set()
        self.attempts: list[tuple[str, bool]] = []
        self.clients: list[HubRpcClient] = []

    def add(self, address: str, replica: InMemoryReplica) -> InMemoryReplica:
        self.replicas[address] = replica
        return replica

    def contact(self, address: str, peer_id: str = "") -> ContactInfo:
        host, port = address.rsplit(":", 1)
        return ContactInfo(
            peer_id=peer_id or f"peer-{address}",
            rpc_address=GossipAddress(address=host, family=4, port=int(port)),
        )

    def transport(self, address: str, secure: bool) -> httpx.AsyncBaseTransport:
        self.attempts.append((address, secure))
        if secure and address in self.insecure_only:
            raise ConnectionError(f"TLS handshake with {address} failed")
        if address in self.broken:
            return httpx.MockTransport(_raise_from_transport)
        if address in self.unready or address not in self.replicas:
            return httpx.MockTransport(lambda request: httpx.Response(503, json={"detail": "down"}))
        return httpx.ASGITransport(app=create_app(self.replicas[address]))

    def connector(self) -> HubConnector:
        return RecordingConnector(self)

    def open_clients(self) -> list[str]:
        return [client.address for client in self.clients if not client._client.is_closed]


class RecordingConnector(HubConnector):
    """Connector that remembers every client it handed out."""

    def __init__(self, network: HubNetwork) -> None:
        super().__init__(timeout_sec=2.0, transport_factory=network.transport)
        self._network = network

    async def connect(self, address: str, secure: bool) -> HubRpcClient:
        client = await super().connect(address, secure)
        self._network.clients.append(client)
        return client


def _raise_from_transport(request: httpx.Request) -> httpx.Response:
    raise RuntimeError("tls stack blew up")

from __future__ import annotations

import ipaddress
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from synchealth.core.config import Settings, get_settings
from synchealth.core.errors import ConnectionFailedError, HubError
from synchealth.rpc.client import HubConnector, HubRpcClient
from synchealth.schemas.hub import ContactInfo
from synchealth.services.health_report import HealthLog, HealthRecord, RepairResult
from synchealth.services.repair import ReplicaEndpoint, investigate_diff
from synchealth.sync.retrievers import RpcMetadataRetriever
from synchealth.sync.span_counter import compute_message_stats
from synchealth.sync.time_prefix import resolve_window
from synchealth.sync.types import TimeWindow

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Everything one sync health run has produced so far."""

    window: TimeWindow
    records: list[HealthRecord] = field(default_factory=list)
    skipped_peers: list[str] = field(default_factory=list)
    failed_peers: dict[str, str] = field(default_factory=dict)


def resolve_peer_address(contact: ContactInfo) -> Optional[str]:
    """Turn a gossiped rpc address into host:port, or None when unusable."""

    rpc_address = contact.rpc_address
    if rpc_address is None or not 0 < rpc_address.port < 65536:
        return None
    if rpc_address.dns_name:
        return f"{rpc_address.dns_name}:{rpc_address.port}"
    try:
        ip = ipaddress.ip_address(rpc_address.address)
    except ValueError:
        return None
    if rpc_address.family and ip.version != rpc_address.family:
        return None
    host = f"[{ip}]" if ip.version == 6 else str(ip)
    return f"{host}:{rpc_address.port}"


async def pick_peers(
    client: HubRpcClient,
    count: int,
    rng: Optional[random.Random] = None,
    allowed_peer_ids: Iterable[str] = (),
) -> list[str]:
    """Randomly sample up to `count` known peers and resolve their addresses."""

    rng = rng or random.Random()
    contacts = await client.get_current_peers()
    allowed = set(allowed_peer_ids)
    if allowed:
        contacts = [contact for contact in contacts if contact.peer_id in allowed]
    sampled = rng.sample(contacts, len(contacts))[: max(count, 0)]
    addresses: list[str] = []
    for contact in sampled:
        address = resolve_peer_address(contact)
        if address is None:
            logger.debug("Dropping peer %s without a usable rpc address", contact.peer_id)
            continue
        addresses.append(address)
    return addresses


class SyncHealthSession:
    """Measure and repair sync health of sampled peers against one primary."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connector: Optional[HubConnector] = None,
        health_log: Optional[HealthLog] = None,
        rng: Optional[random.Random] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._connector = connector or HubConnector(timeout_sec=self._settings.rpc_timeout_sec)
        self._log = health_log or HealthLog(self._settings.outfile)
        self._rng = rng or random.Random()
        self._now = now
        self._mode = self._settings.normalized_span_count_mode()

    async def run(self) -> SessionState:
        """Process every sampled peer; only setup failures abort the run."""

        settings = self._settings
        window = resolve_window(settings.start_time_of_day, settings.stop_time_of_day, self._now)
        logger.info("Start time %s stop time %s", window.start.isoformat(), window.stop.isoformat())
        state = SessionState(window=window)

        primary_client = await self._connector.connect_with_fallback(settings.primary_node)
        async with primary_client:
            primary = ReplicaEndpoint(
                name=settings.primary_node,
                retriever=RpcMetadataRetriever(primary_client),
                replica=primary_client,
            )
            peers = await pick_peers(
                primary_client,
                settings.max_num_peers,
                self._rng,
                settings.parsed_allowed_peers(),
            )
            logger.info("Selected %d peers", len(peers))
            for peer_address in peers:
                await self._process_peer(state, primary, peer_address)

        logger.info(
            "Sync health done: %d records, %d skipped, %d failed",
            len(state.records),
            len(state.skipped_peers),
            len(state.failed_peers),
        )
        return state

    async def _process_peer(
        self, state: SessionState, primary: ReplicaEndpoint, peer_address: str
    ) -> None:
        logger.info("Connecting to peer %s", peer_address)
        try:
            peer_client = await self._connector.connect_with_fallback(peer_address)
        except ConnectionFailedError as exc:
            logger.warning("Skipping peer %s: %s", peer_address, exc.message)
            state.skipped_peers.append(peer_address)
            return

        async with peer_client:
            try:
                record = await self._measure_peer(state.window, primary, peer_address, peer_client)
                self._log.append(record)
            except HubError as exc:
                logger.error("Error computing sync health stats for %s: %s", peer_address, exc)
                state.failed_peers[peer_address] = str(exc)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Raised while computing sync health for %s", peer_address)
                state.failed_peers[peer_address] = str(exc)
            else:
                state.records.append(record)

    async def _measure_peer(
        self,
        window: TimeWindow,
        primary: ReplicaEndpoint,
        peer_address: str,
        peer_client: HubRpcClient,
    ) -> HealthRecord:
        peer = ReplicaEndpoint(
            name=peer_address,
            retriever=RpcMetadataRetriever(peer_client),
            replica=peer_client,
        )
        stats = await compute_message_stats(window, primary.retriever, peer.retriever, self._mode)
        logger.info("Computed sync health score %d for %s", stats.diff, peer_address)

        repair: Optional[RepairResult] = None
        investigation_error: Optional[str] = None
        if stats.diff != 0:
            logger.info("Investigating diff with %s", peer_address)
            try:
                repair = await investigate_diff(primary, peer, window)
            except Exception as exc:  # noqa: BLE001
                # The measured stats are still reported without repair results.
                logger.error("Error investigating diff with %s: %s", peer_address, exc)
                investigation_error = str(exc)

        return HealthRecord.from_results(
            window,
            primary=primary.name,
            peer=peer_address,
            stats=stats,
            repair=repair,
            investigation_error=investigation_error,
        )


async def run_sync_health(settings: Optional[Settings] = None) -> SessionState:
    """Run one sync health session from settings."""

    return await SyncHealthSession(settings).run()

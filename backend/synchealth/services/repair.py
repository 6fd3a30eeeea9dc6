from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from synchealth.core.errors import HubError
from synchealth.services.health_report import RepairResult, TransferOutcome
from synchealth.sync.replica import HubReplica
from synchealth.sync.retrievers import MetadataRetriever
from synchealth.sync.sync_ids import collect_sync_ids_in_span
from synchealth.sync.types import TimeWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplicaEndpoint:
    """A replica as seen by repair: a name, its trie metadata and its records."""

    name: str
    retriever: MetadataRetriever
    replica: HubReplica


@dataclass(frozen=True)
class SyncIdDiff:
    """Sync ids present on exactly one side."""

    only_in_primary: list[bytes]
    only_in_peer: list[bytes]


def unique_sync_ids(mine: Iterable[bytes], other: Iterable[bytes]) -> list[bytes]:
    """Return the sorted sync ids in `mine` that are absent from `other`."""

    return sorted(set(mine).difference(other))


def diff_sync_ids(primary_ids: Iterable[bytes], peer_ids: Iterable[bytes]) -> SyncIdDiff:
    primary_set = set(primary_ids)
    peer_set = set(peer_ids)
    return SyncIdDiff(
        only_in_primary=unique_sync_ids(primary_set, peer_set),
        only_in_peer=unique_sync_ids(peer_set, primary_set),
    )


async def push_missing_messages(
    source: HubReplica, target: HubReplica, missing: list[bytes]
) -> list[TransferOutcome]:
    """Copy `missing` messages from source to target, one outcome per sync id.

    Fetching from the source is a single batched call whose failure
    propagates. Each submission is attempted independently and a rejection
    only fails its own outcome.
    """

    if not missing:
        return []

    messages = await source.get_all_messages_by_sync_ids(missing)
    by_sync_id = {message.sync_id: message for message in messages}

    outcomes: list[TransferOutcome] = []
    for sync_id in missing:
        message = by_sync_id.get(sync_id)
        if message is None:
            outcomes.append(TransferOutcome.failed(sync_id, "Message not found on source."))
            continue
        try:
            await target.submit_message(message)
        except HubError as exc:
            logger.debug("Submitting %s failed: %s", sync_id, exc)
            outcomes.append(TransferOutcome.failed(sync_id, exc.message))
            continue
        outcomes.append(TransferOutcome.succeeded(sync_id, message.type))
    return outcomes


async def investigate_diff(
    primary: ReplicaEndpoint, peer: ReplicaEndpoint, window: TimeWindow
) -> RepairResult:
    """Find messages held by only one side and push them to the other.

    Missing messages are always copied, never deleted from the side that
    has them.
    """

    primary_ids = await collect_sync_ids_in_span(primary.retriever, primary.replica, window)
    peer_ids = await collect_sync_ids_in_span(peer.retriever, peer.replica, window)
    diff = diff_sync_ids(primary_ids, peer_ids)
    logger.info(
        "Diff against %s: %d only in primary, %d only in peer",
        peer.name,
        len(diff.only_in_primary),
        len(diff.only_in_peer),
    )

    results_to_peer = await push_missing_messages(primary.replica, peer.replica, diff.only_in_primary)
    results_to_primary = await push_missing_messages(peer.replica, primary.replica, diff.only_in_peer)
    return RepairResult(results_to_peer=results_to_peer, results_to_primary=results_to_primary)

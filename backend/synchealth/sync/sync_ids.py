from __future__ import annotations

import logging

from synchealth.sync.replica import HubReplica
from synchealth.sync.retrievers import MetadataRetriever
from synchealth.sync.traversal import get_prefix_info, traverse_range
from synchealth.sync.types import TimeWindow, TrieNodeMetadata

logger = logging.getLogger(__name__)


async def collect_sync_ids_in_span(
    retriever: MetadataRetriever, replica: HubReplica, window: TimeWindow
) -> list[bytes]:
    """Return every sync id a replica holds inside the window."""

    prefix_info = await get_prefix_info(retriever, window)
    prefixes: list[bytes] = []

    def record(node: TrieNodeMetadata) -> None:
        prefixes.append(node.prefix)

    await traverse_range(
        prefix_info.common_prefix_metadata,
        prefix_info.start_prefix,
        prefix_info.stop_prefix,
        retriever,
        record,
    )

    sync_ids: list[bytes] = []
    for prefix in prefixes:
        sync_ids.extend(await replica.get_all_sync_ids_by_prefix(prefix))
    logger.debug("Collected %d sync ids from %d prefixes", len(sync_ids), len(prefixes))
    return sync_ids

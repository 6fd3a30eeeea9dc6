from __future__ import annotations

import logging

from synchealth.core.errors import UnavailableError
from synchealth.sync.retrievers import MetadataRetriever
from synchealth.sync.time_prefix import encode_hub_time, to_hub_time
from synchealth.sync.traversal import get_prefix_info, traverse_range
from synchealth.sync.types import MessageStats, TimeWindow, TrieNodeMetadata

logger = logging.getLogger(__name__)


async def count_messages_in_span_optimized(retriever: MetadataRetriever, window: TimeWindow) -> int:
    """Count messages in the window, querying only along the two bounds."""

    prefix_info = await get_prefix_info(retriever, window)
    num_messages = 0

    def add(node: TrieNodeMetadata) -> None:
        nonlocal num_messages
        num_messages += node.num_messages

    await traverse_range(
        prefix_info.common_prefix_metadata,
        prefix_info.start_prefix,
        prefix_info.stop_prefix,
        retriever,
        add,
    )
    return num_messages


async def count_messages_in_span(retriever: MetadataRetriever, window: TimeWindow) -> int:
    """Count messages with one query per second; only suitable for short windows."""

    num_messages = 0
    for seconds in range(to_hub_time(window.start), to_hub_time(window.stop)):
        try:
            metadata = await retriever.get_metadata(encode_hub_time(seconds))
        except UnavailableError:
            # No node for this second means nothing was stored in it.
            continue
        num_messages += metadata.num_messages
    return num_messages


async def count_in_window(
    retriever: MetadataRetriever, window: TimeWindow, mode: str = "optimized"
) -> int:
    """Count messages in the window with the selected strategy."""

    if mode == "stepwise":
        return await count_messages_in_span(retriever, window)
    return await count_messages_in_span_optimized(retriever, window)


async def compute_message_stats(
    window: TimeWindow,
    primary: MetadataRetriever,
    peer: MetadataRetriever,
    mode: str = "optimized",
) -> MessageStats:
    """Count the window on both replicas; any retrieval failure propagates."""

    primary_count = await count_in_window(primary, window, mode)
    peer_count = await count_in_window(peer, window, mode)
    logger.debug("Window counts primary=%s peer=%s", primary_count, peer_count)
    return MessageStats(primary_num_messages=primary_count, peer_num_messages=peer_count)

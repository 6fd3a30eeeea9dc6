from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from synchealth.sync.retrievers import MetadataRetriever
from synchealth.sync.time_prefix import common_prefix, encode, is_prefix
from synchealth.sync.types import TimeWindow, TrieNodeMetadata

logger = logging.getLogger(__name__)

NodeVisitor = Callable[[TrieNodeMetadata], None]


@dataclass(frozen=True)
class PrefixInfo:
    """Encoded window bounds and the node covering both of them."""

    start_prefix: bytes
    stop_prefix: bytes
    common_prefix_metadata: TrieNodeMetadata


async def get_prefix_info(retriever: MetadataRetriever, window: TimeWindow) -> PrefixInfo:
    """Encode the window bounds and fetch their common-prefix node."""

    start_prefix = encode(window.start)
    stop_prefix = encode(window.stop)
    shared = common_prefix(start_prefix, stop_prefix)
    logger.debug("Window prefixes start=%s stop=%s common=%s", start_prefix, stop_prefix, shared)
    metadata = await retriever.get_metadata(shared)
    return PrefixInfo(
        start_prefix=start_prefix,
        stop_prefix=stop_prefix,
        common_prefix_metadata=metadata,
    )


async def traverse_range(
    node: TrieNodeMetadata,
    start_prefix: bytes,
    stop_prefix: bytes,
    retriever: MetadataRetriever,
    visit: NodeVisitor,
) -> None:
    """Visit the coarsest nodes under `node` that lie inside [start, stop).

    Only children straddling one of the two bounds are fetched and descended
    into, so the number of metadata calls grows with the key length rather
    than with the width of the window. `node` must already carry its
    children. Fetch errors propagate and stop the traversal.
    """

    for child in node.children:
        prefix = child.prefix
        if prefix == start_prefix:
            visit(child)
        elif is_prefix(start_prefix, prefix) or is_prefix(stop_prefix, prefix):
            child_metadata = await retriever.get_metadata(prefix)
            await traverse_range(child_metadata, start_prefix, stop_prefix, retriever, visit)
        elif start_prefix < prefix < stop_prefix:
            visit(child)

from __future__ import annotations

from typing import Protocol

from synchealth.core.errors import UnavailableError
from synchealth.rpc.client import HubRpcClient
from synchealth.sync.merkle_trie import MerkleTrie
from synchealth.sync.types import TrieNodeMetadata


class MetadataRetriever(Protocol):
    """Source of trie node metadata, remote or in process."""

    async def get_metadata(self, prefix: bytes) -> TrieNodeMetadata:
        """Return the node at `prefix`; raises UnavailableError when absent."""


class RpcMetadataRetriever:
    """Fetch trie metadata from a remote hub."""

    def __init__(self, client: HubRpcClient) -> None:
        self.client = client

    async def get_metadata(self, prefix: bytes) -> TrieNodeMetadata:
        return await self.client.get_sync_metadata_by_prefix(prefix)


class TrieMetadataRetriever:
    """Resolve trie metadata against an in-process trie."""

    def __init__(self, trie: MerkleTrie) -> None:
        self.trie = trie

    async def get_metadata(self, prefix: bytes) -> TrieNodeMetadata:
        metadata = self.trie.get_trie_node_metadata(prefix)
        if metadata is None:
            raise UnavailableError("Missing metadata for node.")
        return metadata

"""In-memory prefix trie over sync ids.

Each node covers every sync id that starts with its prefix and keeps the
number of sync ids beneath it, which is all the sync health tooling needs
from a hub's trie. Node hashing and persistence are left to the hub itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Optional

from synchealth.sync.types import TrieNodeMetadata


class TrieNode:
    """One node of the trie, keyed by the next byte of the sync id."""

    __slots__ = ("children", "num_messages", "is_leaf")

    def __init__(self) -> None:
        self.children: dict[int, TrieNode] = {}
        self.num_messages = 0
        self.is_leaf = False


class MerkleTrie:
    """Byte-wise trie of sync ids with per-node message counts."""

    def __init__(self, sync_ids: Iterable[bytes] = ()) -> None:
        self._root = TrieNode()
        for sync_id in sync_ids:
            self.insert(sync_id)

    def __len__(self) -> int:
        return self._root.num_messages

    def __contains__(self, sync_id: object) -> bool:
        if not isinstance(sync_id, bytes):
            return False
        node = self._find(sync_id)
        return node is not None and node.is_leaf

    def insert(self, sync_id: bytes) -> bool:
        """Insert a sync id; returns False when it was already present."""

        if not sync_id:
            raise ValueError("sync id must not be empty")
        if sync_id in self:
            return False
        node = self._root
        node.num_messages += 1
        for byte in sync_id:
            node = node.children.setdefault(byte, TrieNode())
            node.num_messages += 1
        node.is_leaf = True
        return True

    def get_trie_node_metadata(self, prefix: bytes) -> Optional[TrieNodeMetadata]:
        """Return the node at `prefix` with its direct children, or None."""

        node = self._find(prefix)
        if node is None:
            return None
        children = tuple(
            TrieNodeMetadata(prefix=prefix + bytes([byte]), num_messages=child.num_messages)
            for byte, child in sorted(node.children.items())
        )
        return TrieNodeMetadata(prefix=prefix, num_messages=node.num_messages, children=children)

    def get_all_sync_ids_by_prefix(self, prefix: bytes) -> list[bytes]:
        """Return every sync id under `prefix` in byte order."""

        node = self._find(prefix)
        if node is None:
            return []
        return list(self._walk(node, prefix))

    def _find(self, prefix: bytes) -> Optional[TrieNode]:
        node = self._root
        for byte in prefix:
            child = node.children.get(byte)
            if child is None:
                return None
            node = child
        return node

    def _walk(self, node: TrieNode, prefix: bytes) -> Iterator[bytes]:
        if node.is_leaf:
            yield prefix
        for byte, child in sorted(node.children.items()):
            yield from self._walk(child, prefix + bytes([byte]))

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from synchealth.core.errors import SubmissionFailedError
from synchealth.schemas.hub import ContactInfo, Message
from synchealth.sync.merkle_trie import MerkleTrie


class HubReplica(Protocol):
    """Record-level operations a replica exposes for repair."""

    async def get_all_sync_ids_by_prefix(self, prefix: bytes) -> list[bytes]:
        """Return every sync id stored under the prefix."""

    async def get_all_messages_by_sync_ids(self, sync_ids: list[bytes]) -> list[Message]:
        """Return the stored messages for the given sync ids."""

    async def submit_message(self, message: Message) -> Message:
        """Store a message, raising SubmissionFailedError when rejected."""


class InMemoryReplica:
    """Replica that keeps messages and their trie in process memory."""

    def __init__(
        self,
        messages: Iterable[Message] = (),
        contacts: Iterable[ContactInfo] = (),
        nickname: str = "",
    ) -> None:
        self.trie = MerkleTrie()
        self.nickname = nickname
        self.contacts: list[ContactInfo] = list(contacts)
        self._messages: dict[bytes, Message] = {}
        for message in messages:
            self.add_message(message)

    def __len__(self) -> int:
        return len(self._messages)

    def add_message(self, message: Message) -> bool:
        """Store a message locally; returns False for duplicates."""

        sync_id = message.sync_id
        if not self.trie.insert(sync_id):
            return False
        self._messages[sync_id] = message
        return True

    def has_message(self, sync_id: bytes) -> bool:
        return sync_id in self._messages

    async def get_all_sync_ids_by_prefix(self, prefix: bytes) -> list[bytes]:
        return self.trie.get_all_sync_ids_by_prefix(prefix)

    async def get_all_messages_by_sync_ids(self, sync_ids: list[bytes]) -> list[Message]:
        return [self._messages[sync_id] for sync_id in sync_ids if sync_id in self._messages]

    async def submit_message(self, message: Message) -> Message:
        if not self.add_message(message):
            raise SubmissionFailedError("Message has already been merged.", code="BAD_REQUEST_DUPLICATE")
        return message

    async def get_current_peers(self) -> list[ContactInfo]:
        return list(self.contacts)

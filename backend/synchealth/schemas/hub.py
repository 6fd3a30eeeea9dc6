from __future__ import annotations

from typing import Any, List, Optional

from pydantic import Field, field_validator

from synchealth.schemas.common import APIModel
from synchealth.sync.time_prefix import encode_hub_time
from synchealth.sync.types import TrieNodeMetadata


def _normalize_hex(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("expected a hex string")
    cleaned = value.strip().lower()
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    bytes.fromhex(cleaned)
    return cleaned


class Message(APIModel):
    """A hub message as carried over the wire."""

    hash: str
    fid: int = Field(ge=0)
    timestamp: int = Field(ge=0, description="Seconds since the hub epoch.")
    type: str = "MESSAGE_TYPE_CAST_ADD"
    body: dict[str, Any] = Field(default_factory=dict)

    @field_validator("hash", mode="before")
    @classmethod
    def _validate_hash(cls, value: Any) -> str:
        cleaned = _normalize_hex(value)
        if not cleaned:
            raise ValueError("message hash must not be empty")
        return cleaned

    @property
    def sync_id(self) -> bytes:
        """Trie key: timestamp prefix followed by the raw message hash."""

        return encode_hub_time(self.timestamp) + bytes.fromhex(self.hash)


class TrieNodeSummaryOut(APIModel):
    """Serialized trie node without its children."""

    prefix: str = ""
    num_messages: int = Field(default=0, ge=0)

    @field_validator("prefix", mode="before")
    @classmethod
    def _validate_prefix(cls, value: Any) -> str:
        return _normalize_hex(value)


class TrieNodeMetadataOut(TrieNodeSummaryOut):
    """Serialized trie node with its direct children."""

    children: List[TrieNodeSummaryOut] = Field(default_factory=list)

    @classmethod
    def from_metadata(cls, metadata: TrieNodeMetadata) -> "TrieNodeMetadataOut":
        return cls(
            prefix=metadata.prefix.hex(),
            num_messages=metadata.num_messages,
            children=[
                TrieNodeSummaryOut(prefix=child.prefix.hex(), num_messages=child.num_messages)
                for child in metadata.children
            ],
        )

    def to_metadata(self) -> TrieNodeMetadata:
        return TrieNodeMetadata(
            prefix=bytes.fromhex(self.prefix),
            num_messages=self.num_messages,
            children=tuple(
                TrieNodeMetadata(prefix=bytes.fromhex(child.prefix), num_messages=child.num_messages)
                for child in self.children
            ),
        )


class SyncIdsPayload(APIModel):
    """A list of hex-encoded sync ids, used both as request and response."""

    sync_ids: List[str] = Field(default_factory=list)

    @field_validator("sync_ids", mode="before")
    @classmethod
    def _validate_sync_ids(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            raise ValueError("sync_ids must be a list")
        return [_normalize_hex(item) for item in value]

    @classmethod
    def from_bytes(cls, sync_ids: list[bytes]) -> "SyncIdsPayload":
        return cls(sync_ids=[sync_id.hex() for sync_id in sync_ids])

    def to_bytes(self) -> list[bytes]:
        return [bytes.fromhex(item) for item in self.sync_ids]


class MessagesResponse(APIModel):
    """Messages returned for a batch of sync ids."""

    messages: List[Message] = Field(default_factory=list)


class GossipAddress(APIModel):
    """Address a peer advertises over gossip."""

    address: str = ""
    family: int = 4
    port: int = 0
    dns_name: str = ""


class ContactInfo(APIModel):
    """Contact information for one known peer."""

    peer_id: str = ""
    rpc_address: Optional[GossipAddress] = None


class ContactInfoResponse(APIModel):
    """Response listing the peers a hub currently knows."""

    contacts: List[ContactInfo] = Field(default_factory=list)


class HubInfoResponse(APIModel):
    """Basic hub information, also used as a readiness probe."""

    version: str
    nickname: str = ""
    num_messages: int = 0

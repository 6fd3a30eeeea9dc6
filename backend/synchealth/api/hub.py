from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from synchealth.core.errors import HubError
from synchealth.schemas.hub import (
    ContactInfoResponse,
    HubInfoResponse,
    Message,
    MessagesResponse,
    SyncIdsPayload,
    TrieNodeMetadataOut,
)
from synchealth.sync.replica import InMemoryReplica

HUB_VERSION = "1.0.0"

router = APIRouter(prefix="/v1", tags=["hub"])


def get_replica(request: Request) -> InMemoryReplica:
    """Dependency to access the served replica from app state."""

    return request.app.state.replica


@router.get("/info", response_model=HubInfoResponse)
async def get_info(replica: InMemoryReplica = Depends(get_replica)) -> HubInfoResponse:
    """Return hub info; also used by clients as a readiness probe."""

    return HubInfoResponse(version=HUB_VERSION, nickname=replica.nickname, num_messages=len(replica))


@router.get("/syncMetadataByPrefix", response_model=TrieNodeMetadataOut)
async def get_sync_metadata_by_prefix(
    prefix: str = Query(default=""),
    replica: InMemoryReplica = Depends(get_replica),
) -> TrieNodeMetadataOut:
    """Return a trie node and its children."""

    metadata = replica.trie.get_trie_node_metadata(_decode_prefix(prefix))
    if metadata is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Missing metadata for node.")
    return TrieNodeMetadataOut.from_metadata(metadata)


@router.get("/syncIdsByPrefix", response_model=SyncIdsPayload)
async def get_all_sync_ids_by_prefix(
    prefix: str = Query(default=""),
    replica: InMemoryReplica = Depends(get_replica),
) -> SyncIdsPayload:
    """Return every sync id under a prefix."""

    try:
        sync_ids = await replica.get_all_sync_ids_by_prefix(_decode_prefix(prefix))
    except HubError as exc:
        raise HTTPException(status_code=_hub_status(exc.code), detail=exc.message) from exc
    return SyncIdsPayload.from_bytes(sync_ids)


@router.post("/messagesBySyncIds", response_model=MessagesResponse)
async def get_all_messages_by_sync_ids(
    payload: SyncIdsPayload,
    replica: InMemoryReplica = Depends(get_replica),
) -> MessagesResponse:
    """Return the stored messages for a batch of sync ids."""

    try:
        messages = await replica.get_all_messages_by_sync_ids(payload.to_bytes())
    except HubError as exc:
        raise HTTPException(status_code=_hub_status(exc.code), detail=exc.message) from exc
    return MessagesResponse(messages=messages)


@router.post("/submitMessage", response_model=Message)
async def submit_message(
    message: Message,
    replica: InMemoryReplica = Depends(get_replica),
) -> Message:
    """Merge a message into the replica."""

    try:
        return await replica.submit_message(message)
    except HubError as exc:
        raise HTTPException(status_code=_hub_status(exc.code), detail=exc.message) from exc


@router.get("/currentPeers", response_model=ContactInfoResponse)
async def get_current_peers(replica: InMemoryReplica = Depends(get_replica)) -> ContactInfoResponse:
    """Return the peers this hub knows about."""

    return ContactInfoResponse(contacts=await replica.get_current_peers())


def _decode_prefix(prefix: str) -> bytes:
    try:
        return bytes.fromhex(prefix.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Prefix must be hex encoded."
        ) from exc


def _hub_status(code: str) -> int:
    if code == "UNAVAILABLE":
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST

from __future__ import annotations

from datetime import timedelta

import pytest

from synchealth.core.errors import RpcTimeoutError, SubmissionFailedError, UnavailableError
from synchealth.schemas.hub import Message
from synchealth.services.repair import (
    ReplicaEndpoint,
    diff_sync_ids,
    investigate_diff,
    push_missing_messages,
    unique_sync_ids,
)
from synchealth.sync.replica import InMemoryReplica
from synchealth.sync.retrievers import TrieMetadataRetriever
from synchealth.sync.types import TimeWindow


class RejectingReplica(InMemoryReplica):
    """Replica that refuses messages of some types and counts calls."""

    def __init__(self, *args, reject_types=(), **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.reject_types = set(reject_types)
        self.fetch_calls = 0
        self.submit_calls = 0

    async def get_all_messages_by_sync_ids(self, sync_ids: list[bytes]) -> list[Message]:
        self.fetch_calls += 1
        return await super().get_all_messages_by_sync_ids(sync_ids)

    async def submit_message(self, message: Message) -> Message:
        self.submit_calls += 1
        if message.type in self.reject_types:
            raise SubmissionFailedError(f"invalid signer for {message.type}")
        return await super().submit_message(message)


class FailingFetchReplica(InMemoryReplica):
    async def get_all_messages_by_sync_ids(self, sync_ids: list[bytes]) -> list[Message]:
        raise RpcTimeoutError("deadline exceeded")


def _endpoint(name: str, replica: InMemoryReplica) -> ReplicaEndpoint:
    return ReplicaEndpoint(name=name, retriever=TrieMetadataRetriever(replica.trie), replica=replica)


def _window(day) -> TimeWindow:
    return TimeWindow(start=day, stop=day + timedelta(seconds=10))


def test_diff_is_a_true_set_difference() -> None:
    primary = [b"a1", b"b2", b"c3", b"c3"]
    peer = [b"c3", b"d4", b"b2"]

    diff = diff_sync_ids(primary, peer)

    assert diff.only_in_primary == [b"a1"]
    assert diff.only_in_peer == [b"d4"]
    shared = set(primary) & set(peer)
    assert set(diff.only_in_primary) | shared == set(primary)
    assert set(diff.only_in_peer) | shared == set(peer)
    assert not set(diff.only_in_primary) & set(peer)
    assert not set(diff.only_in_peer) & set(primary)


def test_identical_sets_have_no_diff() -> None:
    ids = [b"x", b"y", b"z"]
    diff = diff_sync_ids(ids, list(reversed(ids)))
    assert diff.only_in_primary == []
    assert diff.only_in_peer == []
    assert unique_sync_ids([], ids) == []


@pytest.mark.anyio
async def test_empty_missing_set_issues_no_calls() -> None:
    source = RejectingReplica()
    target = RejectingReplica()

    assert await push_missing_messages(source, target, []) == []
    assert source.fetch_calls == 0
    assert target.submit_calls == 0


@pytest.mark.anyio
async def test_failed_submission_does_not_stop_siblings(make_message) -> None:
    messages = [
        make_message(1, "a"),
        make_message(2, "b", msg_type="MESSAGE_TYPE_REACTION_ADD"),
        make_message(3, "c"),
    ]
    source = RejectingReplica(messages)
    target = RejectingReplica(reject_types={"MESSAGE_TYPE_REACTION_ADD"})
    missing = [message.sync_id for message in messages] + [b"0094608009" + b"\x01" * 20]

    outcomes = await push_missing_messages(source, target, missing)

    assert source.fetch_calls == 1
    assert target.submit_calls == 3
    assert [outcome.success for outcome in outcomes] == [True, False, True, False]
    assert outcomes[0].message_type == "MESSAGE_TYPE_CAST_ADD"
    assert "invalid signer" in (outcomes[1].error or "")
    assert outcomes[3].error == "Message not found on source."
    assert target.has_message(messages[0].sync_id)
    assert not target.has_message(messages[1].sync_id)


@pytest.mark.anyio
async def test_source_fetch_failure_propagates(make_message) -> None:
    source = FailingFetchReplica([make_message(1, "a")])

    with pytest.raises(RpcTimeoutError):
        await push_missing_messages(source, InMemoryReplica(), [make_message(1, "a").sync_id])


@pytest.mark.anyio
async def test_investigate_scenario_pushes_missing_messages_to_peer(day, make_message) -> None:
    at_two = [make_message(2, str(i)) for i in range(3)]
    at_seven = [make_message(7, str(i)) for i in range(2)]
    primary = InMemoryReplica(at_two + at_seven)
    peer = InMemoryReplica(at_two)

    result = await investigate_diff(_endpoint("primary", primary), _endpoint("peer", peer), _window(day))

    assert len(result.results_to_peer) == 2
    assert all(outcome.success for outcome in result.results_to_peer)
    assert {outcome.sync_id for outcome in result.results_to_peer} == {
        message.sync_id.hex() for message in at_seven
    }
    assert result.results_to_primary == []
    assert len(peer) == 5


@pytest.mark.anyio
async def test_repair_runs_both_directions_and_never_deletes(day, make_message) -> None:
    shared = make_message(1, "shared")
    only_primary = make_message(3, "p")
    only_peer = make_message(8, "q")
    outside_window = make_message(30, "late")
    primary = InMemoryReplica([shared, only_primary])
    peer = InMemoryReplica([shared, only_peer, outside_window])

    result = await investigate_diff(_endpoint("primary", primary), _endpoint("peer", peer), _window(day))

    assert [outcome.sync_id for outcome in result.results_to_peer] == [only_primary.sync_id.hex()]
    assert [outcome.sync_id for outcome in result.results_to_primary] == [only_peer.sync_id.hex()]
    assert len(primary) == 3
    assert len(peer) == 4
    assert not primary.has_message(outside_window.sync_id)


@pytest.mark.anyio
async def test_repair_is_idempotent(day, make_message) -> None:
    primary = InMemoryReplica([make_message(2, "a"), make_message(7, "b")])
    peer = InMemoryReplica([make_message(5, "c")])
    primary_endpoint = _endpoint("primary", primary)
    peer_endpoint = _endpoint("peer", peer)

    first = await investigate_diff(primary_endpoint, peer_endpoint, _window(day))
    second = await investigate_diff(primary_endpoint, peer_endpoint, _window(day))

    assert len(first.results_to_peer) == 2
    assert len(first.results_to_primary) == 1
    assert second.results_to_peer == []
    assert second.results_to_primary == []


@pytest.mark.anyio
async def test_investigation_fails_when_peer_has_no_common_prefix(day, make_message) -> None:
    primary = InMemoryReplica([make_message(2, "a")])
    peer = InMemoryReplica()

    with pytest.raises(UnavailableError):
        await investigate_diff(_endpoint("primary", primary), _endpoint("peer", peer), _window(day))

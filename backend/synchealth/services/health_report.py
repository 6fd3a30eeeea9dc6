from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import Field

from synchealth.schemas.common import APIModel
from synchealth.sync.time_prefix import from_hub_time, to_hub_time
from synchealth.sync.types import MessageStats, TimeWindow

Direction = Literal["peer", "primary"]


class TransferOutcome(APIModel):
    """Result of submitting one previously missing message to a replica."""

    sync_id: str
    success: bool
    message_type: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, sync_id: bytes, message_type: Optional[str]) -> "TransferOutcome":
        return cls(sync_id=sync_id.hex(), success=True, message_type=message_type)

    @classmethod
    def failed(cls, sync_id: bytes, error: str) -> "TransferOutcome":
        return cls(sync_id=sync_id.hex(), success=False, error=error)


@dataclass
class RepairResult:
    """Transfer outcomes of one repair pass, split by direction."""

    results_to_peer: list[TransferOutcome] = field(default_factory=list)
    results_to_primary: list[TransferOutcome] = field(default_factory=list)


class HealthRecord(APIModel):
    """Health of one peer relative to the primary for one window."""

    start_time: datetime
    stop_time: datetime
    primary: str
    peer: str
    primary_message_count: int = Field(ge=0)
    peer_message_count: int = Field(ge=0)
    results_to_peer: List[TransferOutcome] = Field(default_factory=list)
    results_to_primary: List[TransferOutcome] = Field(default_factory=list)
    investigation_error: Optional[str] = None

    @classmethod
    def from_results(
        cls,
        window: TimeWindow,
        primary: str,
        peer: str,
        stats: MessageStats,
        repair: Optional[RepairResult] = None,
        investigation_error: Optional[str] = None,
    ) -> "HealthRecord":
        repair = repair or RepairResult()
        return cls(
            start_time=from_hub_time(to_hub_time(window.start)),
            stop_time=from_hub_time(to_hub_time(window.stop)),
            primary=primary,
            peer=peer,
            primary_message_count=stats.primary_num_messages,
            peer_message_count=stats.peer_num_messages,
            results_to_peer=list(repair.results_to_peer),
            results_to_primary=list(repair.results_to_primary),
            investigation_error=investigation_error,
        )

    @property
    def stats(self) -> MessageStats:
        return MessageStats(
            primary_num_messages=self.primary_message_count,
            peer_num_messages=self.peer_message_count,
        )

    def results(self, who: Direction) -> List[TransferOutcome]:
        if who == "primary":
            return self.results_to_primary
        return self.results_to_peer

    def success_results(self, who: Direction) -> List[TransferOutcome]:
        return [result for result in self.results(who) if result.success]

    def error_results(self, who: Direction) -> List[TransferOutcome]:
        return [result for result in self.results(who) if not result.success]

    def success_types(self, who: Direction) -> List[str]:
        return _distinct(result.message_type for result in self.success_results(who))

    def error_reasons(self, who: Direction) -> List[str]:
        return _distinct(result.error for result in self.error_results(who))

    def summary(self) -> dict[str, Any]:
        """Flat summary with per-direction aggregates plus the raw outcomes."""

        stats = self.stats
        payload: dict[str, Any] = {
            "start_time": self.start_time.isoformat(),
            "stop_time": self.stop_time.isoformat(),
            "primary": self.primary,
            "peer": self.peer,
            "primary_message_count": self.primary_message_count,
            "peer_message_count": self.peer_message_count,
            "diff": stats.diff,
            "diff_percentage": stats.diff_percentage,
        }
        for who in ("peer", "primary"):
            payload[f"num_success_to_{who}"] = len(self.success_results(who))
            payload[f"num_error_to_{who}"] = len(self.error_results(who))
            payload[f"success_types_to_{who}"] = self.success_types(who)
            payload[f"error_messages_to_{who}"] = self.error_reasons(who)
        payload["investigation_error"] = self.investigation_error
        payload["results_to_peer"] = [item.model_dump(mode="json") for item in self.results_to_peer]
        payload["results_to_primary"] = [
            item.model_dump(mode="json") for item in self.results_to_primary
        ]
        return payload

    def serialized_summary(self) -> str:
        return json.dumps(self.summary(), ensure_ascii=False)


class HealthLog:
    """Append-only JSON-lines file of health records."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def append(self, record: HealthRecord) -> None:
        """Append one record as a single line; earlier lines are never touched."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = record.serialized_summary() + "\n"
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line)

    def read_records(self) -> list[HealthRecord]:
        """Load every record written so far."""

        if not self.path.exists():
            return []
        records: list[HealthRecord] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            records.append(HealthRecord.model_validate(json.loads(line)))
        return records


def _distinct(values: Any) -> List[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen

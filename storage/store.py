"""
storage/store.py - Opportunity store with JSONL persistence.

Features:
- OpportunityStore protocol consumed by the monitor
- In-memory index of the latest record per opportunity id
- Append-only JSONL journal, one line per event (upsert, simulated, executed)
- Journal replay on start, filtered queries, windowed stats, retention purge
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from core import constants as C
from core.constants import OpportunityStatus, OpportunityType, TERMINAL_STATUSES
from core.exceptions import StoreError
from core.logging import get_logger
from core.models import OpportunityCandidate, SimulationResult
from core.time import now_ms, session_id as new_session_id

logger = get_logger(__name__)

Record = Dict[str, Any]


@dataclass
class OpportunityFilter:
    """Query filter for find_recent. Unset fields match everything."""
    kind: Optional[OpportunityType] = None
    status: Optional[OpportunityStatus] = None
    token: Optional[str] = None
    min_net_profit_usd: Optional[Decimal] = None
    since_ms: Optional[int] = None

    def matches(self, record: Record) -> bool:
        if self.kind is not None and record["kind"] != self.kind.value:
            return False
        if self.status is not None and record["status"] != self.status.value:
            return False
        if self.token is not None and self.token not in record["tokens"]:
            return False
        if self.min_net_profit_usd is not None and Decimal(record["net_profit_usd"]) < self.min_net_profit_usd:
            return False
        if self.since_ms is not None and record["updated_at_ms"] < self.since_ms:
            return False
        return True


@runtime_checkable
class OpportunityStore(Protocol):
    """Persistence interface for opportunities and their outcomes."""

    def upsert(self, candidate: OpportunityCandidate) -> Record:
        ...

    def mark_simulated(self, opportunity_id: str, result: SimulationResult) -> Record:
        ...

    def mark_executed(self, opportunity_id: str, result: Mapping[str, Any]) -> Record:
        ...

    def find_recent(
        self,
        filter: Optional[OpportunityFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Record]:
        ...

    def aggregate_stats(self, window_ms: Optional[int] = None) -> Dict[str, Any]:
        ...

    def purge(self, retention_ms: int = C.STORE_RETENTION_MS) -> int:
        ...


class JsonlOpportunityStore:
    """
    OpportunityStore backed by a JSONL journal.

    Stores opportunities in JSONL format for easy appending and analysis.
    The journal for a session is replayed on construction, so reopening
    the same session continues where it left off.
    """

    def __init__(
        self,
        data_dir: Path,
        session_id: str | None = None,
        clock=now_ms,
    ):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.session_id = session_id or new_session_id()
        self.clock = clock

        self.journal_file = self.data_dir / f"opportunities_{self.session_id}.jsonl"
        self._records: Dict[str, Record] = {}
        self.stats = {"upserts": 0, "simulations": 0, "executions": 0, "purged": 0}

        self._replay()

        logger.info(
            f"Opportunity store opened: {self.session_id}",
            extra={"context": {
                "journal_file": str(self.journal_file),
                "records": len(self._records),
            }}
        )

    # -------------------------------------------------------------------------
    # Journal
    # -------------------------------------------------------------------------

    def _replay(self) -> None:
        if not self.journal_file.exists():
            return
        try:
            with open(self.journal_file, "r", encoding="utf-8") as f:
                for line in f:
                    if line.strip():
                        event = json.loads(line)
                        self._records[event["id"]] = event["record"]
        except (OSError, ValueError, KeyError) as e:
            raise StoreError(
                f"Cannot replay journal: {e}",
                {"journal_file": str(self.journal_file)},
            )

    def _append(self, event: str, record: Record) -> None:
        line = {"event": event, "id": record["id"], "timestamp_ms": self.clock(), "record": record}
        try:
            with open(self.journal_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(line) + "\n")
        except OSError as e:
            raise StoreError(
                f"Journal write failed: {e}",
                {"journal_file": str(self.journal_file), "event": event},
            )

    def _get(self, opportunity_id: str) -> Record:
        record = self._records.get(opportunity_id)
        if record is None:
            raise StoreError(f"Unknown opportunity: {opportunity_id}", {"id": opportunity_id})
        return record

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, candidate: OpportunityCandidate) -> Record:
        """Insert or replace the record for a candidate."""
        record = candidate.to_dict()
        previous = self._records.get(candidate.id)
        record["execution"] = previous.get("execution") if previous else None
        record["updated_at_ms"] = candidate.updated_at_ms or self.clock()

        self._append("upsert", record)
        self._records[candidate.id] = record
        self.stats["upserts"] += 1
        return record

    def mark_simulated(self, opportunity_id: str, result: SimulationResult) -> Record:
        """Attach a simulation outcome and the status it implies."""
        record = dict(self._get(opportunity_id))
        record["simulation"] = result.to_dict()
        if result.success:
            status = OpportunityStatus.PROFITABLE if result.is_profitable else OpportunityStatus.UNPROFITABLE
            record["status"] = status.value
        record["updated_at_ms"] = self.clock()

        self._append("simulated", record)
        self._records[opportunity_id] = record
        self.stats["simulations"] += 1
        return record

    def mark_executed(self, opportunity_id: str, result: Mapping[str, Any]) -> Record:
        """
        Record an outside execution outcome.

        result["success"] decides between EXECUTED and FAILED.
        """
        record = dict(self._get(opportunity_id))
        success = bool(result.get("success", False))
        record["execution"] = dict(result)
        record["status"] = (OpportunityStatus.EXECUTED if success else OpportunityStatus.FAILED).value
        record["updated_at_ms"] = self.clock()

        self._append("executed", record)
        self._records[opportunity_id] = record
        self.stats["executions"] += 1

        logger.info(
            f"Execution recorded: {opportunity_id} success={success}",
            extra={"context": {"id": opportunity_id, "status": record["status"]}}
        )
        return record

    def purge(self, retention_ms: int = C.STORE_RETENTION_MS, current_ms: Optional[int] = None) -> int:
        """
        Drop terminal records older than retention_ms and compact the journal.

        Returns the number of records removed.
        """
        current = self.clock() if current_ms is None else current_ms
        terminal = {s.value for s in TERMINAL_STATUSES}
        doomed = [
            rid for rid, r in self._records.items()
            if r["status"] in terminal and current - r["updated_at_ms"] > retention_ms
        ]
        if not doomed:
            return 0

        for rid in doomed:
            del self._records[rid]

        tmp_file = self.journal_file.with_suffix(".jsonl.tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                for rid, record in self._records.items():
                    line = {"event": "upsert", "id": rid, "timestamp_ms": current, "record": record}
                    f.write(json.dumps(line) + "\n")
            tmp_file.replace(self.journal_file)
        except OSError as e:
            raise StoreError(f"Journal compaction failed: {e}", {"journal_file": str(self.journal_file)})

        self.stats["purged"] += len(doomed)
        logger.info(
            f"Purged {len(doomed)} opportunities",
            extra={"context": {"purged": len(doomed), "retention_ms": retention_ms}}
        )
        return len(doomed)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, opportunity_id: str) -> Optional[Record]:
        return self._records.get(opportunity_id)

    def __len__(self) -> int:
        return len(self._records)

    def find_recent(
        self,
        filter: Optional[OpportunityFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Record]:
        """Matching records, most recently updated first."""
        matched = [r for r in self._records.values() if filter is None or filter.matches(r)]
        matched.sort(key=lambda r: (r["updated_at_ms"], r["id"]), reverse=True)
        return matched[offset:offset + limit]

    def aggregate_stats(self, window_ms: Optional[int] = None) -> Dict[str, Any]:
        """Counts and profit totals over records updated within window_ms."""
        since = None if window_ms is None else self.clock() - window_ms
        records = [r for r in self._records.values() if since is None or r["updated_at_ms"] >= since]

        by_kind: Dict[str, int] = {}
        by_status: Dict[str, int] = {}
        total_net = Decimal(0)
        simulated_net = Decimal(0)
        simulated = 0
        for r in records:
            by_kind[r["kind"]] = by_kind.get(r["kind"], 0) + 1
            by_status[r["status"]] = by_status.get(r["status"], 0) + 1
            total_net += Decimal(r["net_profit_usd"])
            sim = r.get("simulation")
            if sim and sim.get("success"):
                simulated += 1
                simulated_net += Decimal(sim["net_profit_usd"])

        return {
            "session_id": self.session_id,
            "window_ms": window_ms,
            "total": len(records),
            "by_kind": by_kind,
            "by_status": by_status,
            "total_net_profit_usd": str(total_net),
            "simulated": simulated,
            "simulated_net_profit_usd": str(simulated_net),
            "profitable": by_status.get(OpportunityStatus.PROFITABLE.value, 0),
        }

    def get_summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "journal_file": str(self.journal_file),
            "records": len(self._records),
            "stats": self.stats,
        }

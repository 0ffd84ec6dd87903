# PATH: execution/state_machine.py
"""
Opportunity status machine.

STATUS CONTRACT:
================

States (OpportunityStatus):
  DETECTED      → emitted by the scanner
  SIMULATED     → simulation ran successfully
  PROFITABLE    → simulated net profit > 0
  UNPROFITABLE  → rejected by the profit gate or lost money in simulation
  EXECUTED      → recorded as executed by an outside actor
  FAILED        → execution failed
  EXPIRED       → aged out before anything happened

Transitions:
  DETECTED     → SIMULATED | UNPROFITABLE | FAILED | EXPIRED
  SIMULATED    → PROFITABLE | UNPROFITABLE | FAILED | EXPIRED
  PROFITABLE   → EXECUTED | FAILED | EXPIRED
  UNPROFITABLE → EXPIRED
  EXECUTED, FAILED, EXPIRED are terminal.

================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.constants import OpportunityStatus, TERMINAL_STATUSES
from core.exceptions import InvalidTransitionError
from core.models import OpportunityCandidate
from core.time import now_ms


VALID_TRANSITIONS: Dict[OpportunityStatus, List[OpportunityStatus]] = {
    OpportunityStatus.DETECTED: [
        OpportunityStatus.SIMULATED,
        OpportunityStatus.UNPROFITABLE,
        OpportunityStatus.FAILED,
        OpportunityStatus.EXPIRED,
    ],
    OpportunityStatus.SIMULATED: [
        OpportunityStatus.PROFITABLE,
        OpportunityStatus.UNPROFITABLE,
        OpportunityStatus.FAILED,
        OpportunityStatus.EXPIRED,
    ],
    OpportunityStatus.PROFITABLE: [
        OpportunityStatus.EXECUTED,
        OpportunityStatus.FAILED,
        OpportunityStatus.EXPIRED,
    ],
    OpportunityStatus.UNPROFITABLE: [OpportunityStatus.EXPIRED],
    OpportunityStatus.EXECUTED: [],  # Terminal state
    OpportunityStatus.FAILED: [],  # Terminal state
    OpportunityStatus.EXPIRED: [],  # Terminal state
}


@dataclass
class StatusTransition:
    """Record of a status transition."""
    from_status: OpportunityStatus
    to_status: OpportunityStatus
    timestamp_ms: int = 0
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp_ms:
            self.timestamp_ms = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_status.value,
            "to": self.to_status.value,
            "timestamp_ms": self.timestamp_ms,
            "reason": self.reason,
            "metadata": self.metadata,
        }


def can_transition(current: OpportunityStatus, new_status: OpportunityStatus) -> bool:
    """Check if current -> new_status is a valid move."""
    return new_status in VALID_TRANSITIONS.get(current, [])


def is_terminal(status: OpportunityStatus) -> bool:
    return status in TERMINAL_STATUSES


def transition(
    candidate: OpportunityCandidate,
    new_status: OpportunityStatus,
    reason: str = "",
    metadata: Optional[Dict[str, Any]] = None,
    timestamp_ms: Optional[int] = None,
) -> StatusTransition:
    """
    Move a candidate to a new status and record it in its history.

    timestamp_ms stamps the record and the candidate; wall clock if omitted.

    Raises InvalidTransitionError if the move is not valid.
    """
    if not can_transition(candidate.status, new_status):
        raise InvalidTransitionError(
            f"Cannot transition from {candidate.status.value} to {new_status.value}",
            {
                "opportunity_id": candidate.id,
                "valid": [s.value for s in VALID_TRANSITIONS.get(candidate.status, [])],
            },
        )

    record = StatusTransition(
        from_status=candidate.status,
        to_status=new_status,
        timestamp_ms=timestamp_ms or 0,
        reason=reason,
        metadata=metadata or {},
    )
    candidate.status_history.append(record)
    candidate.status = new_status
    candidate.updated_at_ms = record.timestamp_ms
    return record


def expire(
    candidate: OpportunityCandidate,
    reason: str = "ttl",
    timestamp_ms: Optional[int] = None,
) -> Optional[StatusTransition]:
    """Expire a candidate unless it already reached a terminal status."""
    if is_terminal(candidate.status):
        return None
    return transition(candidate, OpportunityStatus.EXPIRED, reason=reason, timestamp_ms=timestamp_ms)

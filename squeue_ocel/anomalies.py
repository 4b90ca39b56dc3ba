"""
Anomalies - non-fatal observations accumulated during an extraction run.

An anomaly never interrupts the run. It is logged when recorded and handed
back alongside the finished log so the caller can report counts.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AnomalyKind(str, Enum):
    """Kinds of non-fatal anomaly."""

    TEMPORAL_INVERSION = "temporal_inversion"
    """A delta was dated before the previously applied one."""

    SUPPRESSED_TRANSITION = "suppressed_transition"
    """Transition back to PENDING after a later state."""

    UNRECOGNIZED_STATE = "unrecognized_state"
    """Transition to (or first observation in) a state label we do not model."""

    DUPLICATE_EVENT = "duplicate_event"
    """A second Started/Ending/terminal transition for the same job."""

    LATE_START_TIME = "late_start_time"
    """Start time reported for a job already in a terminal state."""

    INVALID_INPUT = "invalid_input"
    """Job skipped because its captures could not be replayed or a row was rejected."""


@dataclass(frozen=True)
class Anomaly:
    """
    Immutable anomaly record.

    Attributes:
        kind: What went wrong
        job_id: Raw scheduler job id the anomaly belongs to; None for a
            rejected row without a readable job id
        message: Human-readable description
        observed_at: Capture time at which it was detected, if any
        details: Extra context (timestamps, labels) for reporting
    """

    kind: AnomalyKind
    job_id: Optional[str]
    message: str
    observed_at: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "job_id": self.job_id,
            "message": self.message,
            "observed_at": self.observed_at.isoformat() if self.observed_at else None,
            "details": {
                k: v.isoformat() if isinstance(v, datetime) else v
                for k, v in self.details.items()
            },
        }


def record_anomaly(
    sink: List[Anomaly],
    kind: AnomalyKind,
    job_id: Optional[str],
    message: str,
    observed_at: Optional[datetime] = None,
    **details: Any,
) -> Anomaly:
    """Append an anomaly to sink and log it at WARNING."""
    anomaly = Anomaly(
        kind=kind,
        job_id=job_id,
        message=message,
        observed_at=observed_at,
        details=details,
    )
    sink.append(anomaly)
    logger.warning("[%s] job %s: %s", kind.value, job_id, message)
    return anomaly

"""
Job lifecycle states as reported by the scheduler queue.

A state is a closed set of known outcomes plus one open arm for labels the
scheduler may report that we do not model (CONFIGURING, SUSPENDED, ...).
Keeping the open arm explicit lets the event deriver match every known kind
and treat everything else uniformly as "unrecognized".

Accepted spellings:
-------------------
- Long names, case-insensitive: "RUNNING", "running", "Out_Of_Memory"
- squeue short codes: PD, R, CG, CD, CA, F, TO, OOM
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class JobStateKind(str, Enum):
    """
    Kinds of lifecycle state.

    OTHER is the open arm; the concrete label lives on JobState.label.
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETING = "COMPLETING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    OUT_OF_MEMORY = "OUT_OF_MEMORY"
    OTHER = "OTHER"


TERMINAL_KINDS = frozenset({
    JobStateKind.COMPLETED,
    JobStateKind.CANCELLED,
    JobStateKind.FAILED,
    JobStateKind.TIMEOUT,
    JobStateKind.OUT_OF_MEMORY,
})

_SHORT_CODES = {
    "PD": JobStateKind.PENDING,
    "R": JobStateKind.RUNNING,
    "CG": JobStateKind.COMPLETING,
    "CD": JobStateKind.COMPLETED,
    "CA": JobStateKind.CANCELLED,
    "F": JobStateKind.FAILED,
    "TO": JobStateKind.TIMEOUT,
    "OOM": JobStateKind.OUT_OF_MEMORY,
}


@dataclass(frozen=True)
class JobState:
    """
    Tagged lifecycle state.

    label is only set for the OTHER arm and holds the raw label verbatim.
    """

    kind: JobStateKind
    label: Optional[str] = None

    def __post_init__(self):
        if self.kind == JobStateKind.OTHER and not self.label:
            raise ValueError("OTHER job state requires a label")
        if self.kind != JobStateKind.OTHER and self.label is not None:
            raise ValueError(f"{self.kind.value} job state does not take a label")

    @classmethod
    def parse(cls, raw: Any) -> "JobState":
        """
        Parse a scheduler state label.

        Known long names and short codes map to their kind; any other
        non-empty label becomes OTHER(label).

        Raises:
            ValueError: If raw is empty or not a string
        """
        if isinstance(raw, JobState):
            return raw
        if isinstance(raw, JobStateKind):
            return cls(raw)
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"Invalid job state label: {raw!r}")

        label = raw.strip()
        normalized = label.upper()
        if normalized in _SHORT_CODES:
            return cls(_SHORT_CODES[normalized])
        if normalized != JobStateKind.OTHER.value and normalized in JobStateKind.__members__:
            return cls(JobStateKind[normalized])
        return cls(JobStateKind.OTHER, label)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    @property
    def is_pending(self) -> bool:
        return self.kind == JobStateKind.PENDING

    def __str__(self) -> str:
        if self.kind == JobStateKind.OTHER:
            return self.label
        return self.kind.value


PENDING = JobState(JobStateKind.PENDING)
RUNNING = JobState(JobStateKind.RUNNING)
COMPLETING = JobState(JobStateKind.COMPLETING)
COMPLETED = JobState(JobStateKind.COMPLETED)
CANCELLED = JobState(JobStateKind.CANCELLED)
FAILED = JobState(JobStateKind.FAILED)
TIMEOUT = JobState(JobStateKind.TIMEOUT)
OUT_OF_MEMORY = JobState(JobStateKind.OUT_OF_MEMORY)

"""
Queue observation models - typed records handed to the extraction core.

These models represent WHAT THE QUEUE REPORTED, nothing more.

Rules:
------
- A JobObservation is a complete row for one job at one capture time
- A JobStateDelta carries only the fields that changed since the previous
  capture; absent fields are unchanged
- Every field of a delta is validated with the same types as the full row
- Naive timestamps are taken to be UTC (squeue prints local-less times)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from squeue_ocel.states import JobState


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class JobField(str, Enum):
    """Fields of a queue row that a delta can change."""

    COMMAND = "command"
    WORK_DIR = "work_dir"
    CPUS = "cpus"
    MIN_MEMORY = "min_memory"
    SUBMIT_TIME = "submit_time"
    START_TIME = "start_time"
    STATE = "state"
    ACCOUNT = "account"
    GROUP = "group"
    PARTITION = "partition"
    EXEC_HOST = "exec_host"
    NAME = "name"
    REASON = "reason"
    END_TIME = "end_time"
    TIME_LIMIT = "time_limit"
    PRIORITY = "priority"
    NODES = "nodes"


# Fields every observation must carry; a delta may change but never clear them
REQUIRED_FIELDS = frozenset({
    JobField.COMMAND,
    JobField.WORK_DIR,
    JobField.CPUS,
    JobField.MIN_MEMORY,
    JobField.SUBMIT_TIME,
    JobField.STATE,
    JobField.ACCOUNT,
    JobField.GROUP,
    JobField.PARTITION,
})

_TIME_FIELDS = ("submit_time", "start_time", "end_time")

# Row fields a queue diff may carry that never feed the log
UNTRACKED_DIFF_FIELDS = frozenset({
    "job_id",
    "min_cpus",
    "dependency",
    "features",
    "array_job_id",
    "step_job_id",
})

# squeue prints "n/a" or "" for jobs without an allocation
_HOST_PLACEHOLDERS = ("", "n/a", "(null)")


def _host_or_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in _HOST_PLACEHOLDERS:
        return None
    return value


@dataclass(frozen=True)
class FieldChange:
    """One field-level change: field X changed to value V."""

    field: JobField
    value: Any


class JobObservation(BaseModel):
    """
    Complete state of one job as captured from the queue.

    Unknown keys in the source row (min_cpus, dependency, features, ...)
    are ignored; they never feed the log.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    job_id: str = Field(min_length=1)
    command: str
    work_dir: str
    cpus: int = Field(ge=0)
    min_memory: str
    submit_time: datetime
    start_time: Optional[datetime] = None
    state: JobState
    account: str = Field(min_length=1)
    group: str = Field(min_length=1)
    partition: str = Field(min_length=1)
    exec_host: Optional[str] = None

    name: Optional[str] = None
    reason: Optional[str] = None
    end_time: Optional[datetime] = None
    time_limit: Optional[str] = None
    priority: Optional[float] = None
    nodes: Optional[int] = None

    @field_validator("state", mode="before")
    @classmethod
    def _parse_state(cls, value: Any) -> JobState:
        return JobState.parse(value)

    @field_validator(*_TIME_FIELDS, mode="after")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("work_dir", mode="before")
    @classmethod
    def _path_to_str(cls, value: Any) -> Any:
        if hasattr(value, "__fspath__"):
            return str(value)
        return value

    @field_validator("exec_host", mode="before")
    @classmethod
    def _empty_host_is_none(cls, value: Any) -> Any:
        return _host_or_none(value)

    def value_of(self, job_field: JobField) -> Any:
        return getattr(self, job_field.value)


class JobStateDelta(BaseModel):
    """
    Sparse set of field-level changes to a job.

    Which fields are present is tracked by pydantic (model_fields_set), so an
    explicit null ("start_time cleared") is distinguishable from an absent
    field ("start_time unchanged").

    Row fields the log does not track (job_id, min_cpus, dependency, ...)
    are dropped; any other unknown key is rejected.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    command: Optional[str] = None
    work_dir: Optional[str] = None
    cpus: Optional[int] = Field(default=None, ge=0)
    min_memory: Optional[str] = None
    submit_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    state: Optional[JobState] = None
    account: Optional[str] = None
    group: Optional[str] = None
    partition: Optional[str] = None
    exec_host: Optional[str] = None
    name: Optional[str] = None
    reason: Optional[str] = None
    end_time: Optional[datetime] = None
    time_limit: Optional[str] = None
    priority: Optional[float] = None
    nodes: Optional[int] = None

    @field_validator("state", mode="before")
    @classmethod
    def _parse_state(cls, value: Any) -> Optional[JobState]:
        if value is None:
            return None
        return JobState.parse(value)

    @field_validator(*_TIME_FIELDS, mode="after")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("work_dir", mode="before")
    @classmethod
    def _path_to_str(cls, value: Any) -> Any:
        if hasattr(value, "__fspath__"):
            return str(value)
        return value

    @field_validator("exec_host", mode="before")
    @classmethod
    def _empty_host_is_none(cls, value: Any) -> Any:
        return _host_or_none(value)

    @model_validator(mode="before")
    @classmethod
    def _drop_untracked_fields(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if k not in UNTRACKED_DIFF_FIELDS}
        return data

    @model_validator(mode="after")
    def _required_fields_not_cleared(self) -> "JobStateDelta":
        cleared = sorted(
            name for name in self.model_fields_set
            if JobField(name) in REQUIRED_FIELDS and getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"Delta cannot clear required fields: {cleared}")
        return self

    @classmethod
    def from_changes(
        cls,
        changes: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]],
    ) -> "JobStateDelta":
        """
        Build a delta from its wire shape.

        Accepts either a mapping of field -> value or a list of single-key
        mappings ([{"state": "RUNNING"}, {"start_time": "..."}]). In the list
        form a later entry for the same field replaces an earlier one.
        """
        if isinstance(changes, Mapping):
            return cls.model_validate(dict(changes))

        merged: Dict[str, Any] = {}
        for i, entry in enumerate(changes):
            if not isinstance(entry, Mapping) or len(entry) != 1:
                raise ValueError(f"Delta entry {i} must be a single-key mapping, got {entry!r}")
            merged.update(entry)
        return cls.model_validate(merged)

    @classmethod
    def between(cls, before: JobObservation, after: JobObservation) -> "JobStateDelta":
        """Delta holding every field whose value differs between two observations."""
        diff = {
            job_field.value: after.value_of(job_field)
            for job_field in JobField
            if before.value_of(job_field) != after.value_of(job_field)
        }
        return cls(**diff)

    def changes(self) -> Tuple[FieldChange, ...]:
        """Present fields as FieldChange variants, in field declaration order."""
        return tuple(
            FieldChange(job_field, getattr(self, job_field.value))
            for job_field in JobField
            if job_field.value in self.model_fields_set
        )

    def apply_to(self, observation: JobObservation) -> JobObservation:
        """Return the observation with this delta's fields replaced."""
        update = {change.field.value: change.value for change in self.changes()}
        if not update:
            return observation
        return observation.model_copy(update=update)

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


Payload = Union[JobObservation, JobStateDelta]


@dataclass(frozen=True)
class CaptureRecord:
    """
    One timestamped capture for one job: a full snapshot or a delta.

    captured_at is the time the queue was polled, not a job time.
    """

    captured_at: datetime
    job_id: str
    payload: Payload

    def __post_init__(self):
        if not isinstance(self.captured_at, datetime):
            raise TypeError(f"captured_at must be a datetime, got {type(self.captured_at).__name__}")
        object.__setattr__(self, "captured_at", ensure_utc(self.captured_at))

    @property
    def is_snapshot(self) -> bool:
        return isinstance(self.payload, JobObservation)

"""
Job State Reconstructor - replays one job's captures into materialized states.

Two capture styles are supported:

SNAPSHOT MODE (every capture is a full row):
    Captures are ordered by capture time. When two captures share a capture
    time, the one supplied later is the freshest and wins. Changed fields are
    the fields that differ from the previous materialized state.

DELTA MODE (at least one capture is a delta):
    The first capture must be a full row (the base). Every following capture
    is applied in the order supplied. A full row arriving mid-stream is
    treated as a delta of its differing fields.

    A capture dated before the previously applied one is STILL applied, but a
    TEMPORAL_INVERSION anomaly is recorded. Replay never aborts on it.

Output is one MaterializedState per capture, consumed by the event deriver.
Nothing here registers entities or creates events.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from squeue_ocel.anomalies import Anomaly, AnomalyKind, record_anomaly
from squeue_ocel.errors import InputError
from squeue_ocel.models import CaptureRecord, FieldChange, JobField, JobObservation, JobStateDelta


class ReplayMode(str, Enum):
    SNAPSHOT = "snapshot"
    DELTA = "delta"


@dataclass(frozen=True)
class MaterializedState:
    """
    State of a job at one capture time.

    Attributes:
        captured_at: Capture time of the record that produced this state
        observation: Full job row after applying the record
        changes: Field changes the record introduced (empty for the first state)
        previous: Row before the record was applied; None for the first state
    """

    captured_at: datetime
    observation: JobObservation
    changes: Tuple[FieldChange, ...] = ()
    previous: Optional[JobObservation] = None

    @property
    def is_initial(self) -> bool:
        return self.previous is None

    def change_for(self, job_field: JobField) -> Optional[FieldChange]:
        for change in self.changes:
            if change.field == job_field:
                return change
        return None


@dataclass(frozen=True)
class Reconstruction:
    """All materialized states of one job, in replay order."""

    job_id: str
    mode: ReplayMode
    states: Tuple[MaterializedState, ...]
    anomalies: Tuple[Anomaly, ...] = ()

    @property
    def initial(self) -> MaterializedState:
        return self.states[0]

    @property
    def final(self) -> MaterializedState:
        return self.states[-1]


def _check_snapshot_job(job_id: str, record: CaptureRecord) -> JobObservation:
    observation = record.payload
    if observation.job_id != job_id:
        raise InputError(
            job_id,
            f"snapshot captured at {record.captured_at.isoformat()} "
            f"belongs to job {observation.job_id}",
        )
    return observation


def replay_snapshots(job_id: str, records: Sequence[CaptureRecord]) -> Reconstruction:
    """
    Materialize a job from full snapshots only.

    Raises:
        InputError: If there are no records, a record is a delta, or a
            snapshot belongs to another job
    """
    if not records:
        raise InputError(job_id, "no captures")

    # Later-supplied snapshot wins for identical capture times
    freshest: Dict[datetime, JobObservation] = {}
    for record in records:
        if not record.is_snapshot:
            raise InputError(job_id, "snapshot replay received a delta")
        freshest[record.captured_at] = _check_snapshot_job(job_id, record)

    states: List[MaterializedState] = []
    previous: Optional[JobObservation] = None
    for captured_at in sorted(freshest):
        observation = freshest[captured_at]
        if previous is None:
            states.append(MaterializedState(captured_at, observation))
        else:
            delta = JobStateDelta.between(previous, observation)
            states.append(MaterializedState(captured_at, observation, delta.changes(), previous))
        previous = observation

    return Reconstruction(job_id=job_id, mode=ReplayMode.SNAPSHOT, states=tuple(states))


def replay_deltas(job_id: str, records: Sequence[CaptureRecord]) -> Reconstruction:
    """
    Materialize a job from a base snapshot followed by deltas.

    Raises:
        InputError: If the stream is empty, does not start with a snapshot,
            or contains a snapshot of another job
    """
    if not records:
        raise InputError(job_id, "no captures")

    base = records[0]
    if not base.is_snapshot:
        raise InputError(job_id, "delta stream does not start with a base snapshot")

    anomalies: List[Anomaly] = []
    current = _check_snapshot_job(job_id, base)
    last_applied = base.captured_at
    states: List[MaterializedState] = [MaterializedState(base.captured_at, current)]

    for record in records[1:]:
        if record.captured_at < last_applied:
            record_anomaly(
                anomalies,
                AnomalyKind.TEMPORAL_INVERSION,
                job_id,
                f"going backwards in time: {last_applied.isoformat()} -> "
                f"{record.captured_at.isoformat()}",
                observed_at=record.captured_at,
                last_applied=last_applied,
                captured_at=record.captured_at,
            )

        if record.is_snapshot:
            delta = JobStateDelta.between(current, _check_snapshot_job(job_id, record))
        else:
            delta = record.payload

        updated = delta.apply_to(current)
        states.append(MaterializedState(record.captured_at, updated, delta.changes(), current))
        current = updated
        last_applied = record.captured_at

    return Reconstruction(
        job_id=job_id,
        mode=ReplayMode.DELTA,
        states=tuple(states),
        anomalies=tuple(anomalies),
    )


def reconstruct_job(job_id: str, records: Sequence[CaptureRecord]) -> Reconstruction:
    """
    Replay one job's captures, choosing the mode from the records.

    Any delta among the records selects delta mode; otherwise snapshot mode.

    Raises:
        InputError: If the records cannot be replayed (see replay_* functions)
            or a record is filed under another job id
    """
    for record in records:
        if record.job_id != job_id:
            raise InputError(job_id, f"capture filed under job {record.job_id}")

    if any(not record.is_snapshot for record in records):
        return replay_deltas(job_id, records)
    return replay_snapshots(job_id, records)

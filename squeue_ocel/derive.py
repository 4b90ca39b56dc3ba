"""
Lifecycle Event Deriver - turns a job's materialized states into events.

Transition table:
-----------------
    (none)          -> any            Submit Job (once, at submit time)
    *               -> RUNNING        Job Started        (once, see below)
    *               -> COMPLETING     Job Ending         (once)
    *               -> COMPLETED      Job Completed      (terminal)
    *               -> CANCELLED      Job Cancelled      (terminal)
    *               -> FAILED         Job Failed         (terminal, carries reason)
    *               -> TIMEOUT        Job Timeout        (terminal)
    *               -> OUT_OF_MEMORY  Job Out Of Memory  (terminal)
    *               -> PENDING        suppressed, anomaly
    *               -> OTHER(label)   suppressed, anomaly

Started reconciliation:
-----------------------
The start time and the RUNNING state can be observed in either order.

- Start time seen while still PENDING: held on the accumulator. When RUNNING
  is observed, the held time (not the capture time) stamps the event.
- RUNNING seen first: the event is created at the capture time. A later
  start time moves that same event; no second Started is created.
- Start time seen after the job already reached a terminal state: anomaly,
  the event is left untouched.

Every job is folded independently. The accumulator lives only for the fold
of one job; nothing is shared between jobs.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from squeue_ocel.anomalies import Anomaly, AnomalyKind, record_anomaly
from squeue_ocel.identifiers import CanonicalId
from squeue_ocel.log import EventAttribute, EventCategory, EventRecord, Relationship
from squeue_ocel.models import JobField, JobObservation
from squeue_ocel.reconstruct import MaterializedState, Reconstruction
from squeue_ocel.states import JobState, JobStateKind

logger = logging.getLogger(__name__)


# State kind entered -> event category. None means the transition is suppressed.
TRANSITION_EVENTS: Dict[JobStateKind, Optional[EventCategory]] = {
    JobStateKind.PENDING: None,
    JobStateKind.RUNNING: EventCategory.STARTED,
    JobStateKind.COMPLETING: EventCategory.ENDING,
    JobStateKind.COMPLETED: EventCategory.COMPLETED,
    JobStateKind.CANCELLED: EventCategory.CANCELLED,
    JobStateKind.FAILED: EventCategory.FAILED,
    JobStateKind.TIMEOUT: EventCategory.TIMEOUT,
    JobStateKind.OUT_OF_MEMORY: EventCategory.OUT_OF_MEMORY,
    JobStateKind.OTHER: None,
}


@dataclass
class _EventDraft:
    """Event under construction. Frozen into an EventRecord after the fold."""

    category: EventCategory
    time: datetime
    attributes: Tuple[EventAttribute, ...] = ()
    relationships: Tuple[Relationship, ...] = ()


@dataclass
class LifecycleAccumulator:
    """
    Per-job fold state.

    Attributes:
        job_id: Raw scheduler job id
        job_ref: Canonical id string of the job object
        drafts: Events in emission order
        anomalies: Anomalies found while folding this job
        pending_start: Start time seen while PENDING, not yet used
        started: The single Started event, once created
        started_by_transition: Whether Started came from a RUNNING transition
        ending: The single Ending event, once created
        terminal: The single terminal event, once created
    """

    job_id: str
    job_ref: str
    drafts: List[_EventDraft] = field(default_factory=list)
    anomalies: List[Anomaly] = field(default_factory=list)
    pending_start: Optional[datetime] = None
    started: Optional[_EventDraft] = None
    started_by_transition: bool = False
    ending: Optional[_EventDraft] = None
    terminal: Optional[_EventDraft] = None

    def emit(
        self,
        category: EventCategory,
        time: datetime,
        attributes: Tuple[EventAttribute, ...] = (),
        extra_relationships: Tuple[Relationship, ...] = (),
    ) -> _EventDraft:
        draft = _EventDraft(
            category=category,
            time=time,
            attributes=attributes,
            relationships=(Relationship(self.job_ref, "job"),) + extra_relationships,
        )
        self.drafts.append(draft)
        return draft

    def warn(self, kind: AnomalyKind, message: str, observed_at: datetime, **details) -> None:
        record_anomaly(self.anomalies, kind, self.job_id, message, observed_at, **details)


@dataclass(frozen=True)
class JobDerivation:
    """Events and anomalies derived for one job."""

    job_id: str
    events: Tuple[EventRecord, ...]
    anomalies: Tuple[Anomaly, ...] = ()


def _host_relationship(observation: JobObservation) -> Tuple[Relationship, ...]:
    if observation.exec_host:
        return (Relationship(str(CanonicalId.host(observation.exec_host)), "executed on"),)
    return ()


def _start(acc: LifecycleAccumulator, time: datetime, observation: JobObservation) -> _EventDraft:
    acc.started = acc.emit(
        EventCategory.STARTED,
        time,
        extra_relationships=_host_relationship(observation),
    )
    acc.pending_start = None
    return acc.started


def _fold_initial(acc: LifecycleAccumulator, state: MaterializedState) -> LifecycleAccumulator:
    observation = state.observation
    acc.emit(
        EventCategory.SUBMIT,
        observation.submit_time,
        extra_relationships=(
            Relationship(str(CanonicalId.account(observation.account)), "submitter"),
        ),
    )

    if observation.state.kind == JobStateKind.OTHER:
        acc.warn(
            AnomalyKind.UNRECOGNIZED_STATE,
            f"first observed in unrecognized state {observation.state}",
            state.captured_at,
            label=str(observation.state),
        )

    if observation.start_time is not None:
        if observation.state.is_pending:
            acc.pending_start = observation.start_time
        else:
            # Already past PENDING when first seen: the start time is real
            _start(acc, observation.start_time, observation)
    return acc


def _fold_transition(
    acc: LifecycleAccumulator,
    before: JobState,
    state: MaterializedState,
) -> None:
    observation = state.observation
    after = observation.state
    category = TRANSITION_EVENTS[after.kind]

    if after.kind == JobStateKind.PENDING:
        acc.warn(
            AnomalyKind.SUPPRESSED_TRANSITION,
            f"unexpected state change {before} -> PENDING",
            state.captured_at,
            before=str(before),
        )
        return

    if category is None:
        acc.warn(
            AnomalyKind.UNRECOGNIZED_STATE,
            f"unexpected state change {before} -> {after}",
            state.captured_at,
            before=str(before),
            label=str(after),
        )
        return

    if acc.terminal is not None:
        acc.warn(
            AnomalyKind.DUPLICATE_EVENT,
            f"state change {before} -> {after} after terminal "
            f"'{acc.terminal.category.value}' suppressed",
            state.captured_at,
            before=str(before),
            after=str(after),
        )
        return

    if category == EventCategory.STARTED:
        if acc.started is not None:
            if acc.started_by_transition:
                acc.warn(
                    AnomalyKind.DUPLICATE_EVENT,
                    f"second transition {before} -> RUNNING suppressed",
                    state.captured_at,
                    before=str(before),
                )
            else:
                logger.debug("job %s: RUNNING after start time already recorded", acc.job_id)
            acc.started_by_transition = True
            return
        time = acc.pending_start or observation.start_time or state.captured_at
        _start(acc, time, observation)
        acc.started_by_transition = True
        return

    if category == EventCategory.ENDING:
        if acc.ending is not None:
            acc.warn(
                AnomalyKind.DUPLICATE_EVENT,
                f"second transition {before} -> COMPLETING suppressed",
                state.captured_at,
                before=str(before),
            )
            return
        acc.ending = acc.emit(EventCategory.ENDING, state.captured_at)
        return

    attributes: Tuple[EventAttribute, ...] = ()
    if category == EventCategory.FAILED and observation.reason:
        attributes = (EventAttribute("reason", observation.reason),)
    acc.terminal = acc.emit(category, state.captured_at, attributes)


def _fold_start_time(
    acc: LifecycleAccumulator,
    before: JobState,
    start_time: Optional[datetime],
    state: MaterializedState,
) -> None:
    observation = state.observation

    if start_time is None:
        # Cleared estimate on a queued job
        if observation.state.is_pending:
            acc.pending_start = None
        return

    if before.is_terminal:
        acc.warn(
            AnomalyKind.LATE_START_TIME,
            f"start time {start_time.isoformat()} reported after terminal state {before}",
            state.captured_at,
            start_time=start_time,
            state=str(before),
        )
        return

    if observation.state.is_pending:
        acc.pending_start = start_time
        return

    if acc.started is not None:
        if acc.started.time != start_time:
            logger.debug(
                "job %s: moving Started from %s to %s",
                acc.job_id, acc.started.time.isoformat(), start_time.isoformat(),
            )
            acc.started.time = start_time
        return

    _start(acc, start_time, observation)


def fold_state(acc: LifecycleAccumulator, state: MaterializedState) -> LifecycleAccumulator:
    """
    Advance the accumulator by one materialized state.

    The state change (if any) is handled before the start time so that a
    capture carrying both RUNNING and its start time yields one Started event
    stamped with that start time.
    """
    if state.is_initial:
        return _fold_initial(acc, state)

    before = state.previous.state
    state_change = state.change_for(JobField.STATE)
    if state_change is not None and state_change.value != before:
        _fold_transition(acc, before, state)

    start_change = state.change_for(JobField.START_TIME)
    if start_change is not None:
        _fold_start_time(acc, before, start_change.value, state)

    return acc


def _freeze(acc: LifecycleAccumulator) -> Tuple[EventRecord, ...]:
    return tuple(
        EventRecord(
            id=f"{draft.category.slug}-{acc.job_ref}-{index}",
            event_type=draft.category.value,
            time=draft.time,
            attributes=draft.attributes,
            relationships=draft.relationships,
        )
        for index, draft in enumerate(acc.drafts)
    )


def derive_job_events(reconstruction: Reconstruction) -> JobDerivation:
    """
    Fold a job's materialized states into its lifecycle events.

    Pure with respect to everything outside the job: no registry access,
    no shared state.

    Returns:
        JobDerivation with immutable events (ids unique within the job and,
        because they embed the job's canonical id, across jobs) and the
        anomalies found while folding
    """
    job_id = reconstruction.job_id
    acc = LifecycleAccumulator(job_id=job_id, job_ref=str(CanonicalId.job(job_id)))
    for state in reconstruction.states:
        acc = fold_state(acc, state)

    return JobDerivation(
        job_id=job_id,
        events=_freeze(acc),
        anomalies=tuple(acc.anomalies),
    )

"""
Log Assembler - merges per-job results into one checked log.

The assembler collects events, objects and anomalies from every job of a
run, orders them deterministically, runs the integrity checks and builds the
summary. It never repairs data: an integrity violation aborts assembly.
"""

import logging
from collections import Counter
from typing import Iterable, List, Optional, Sequence, Tuple

from squeue_ocel.anomalies import Anomaly
from squeue_ocel.integrity import verify_integrity
from squeue_ocel.log import (
    EVENT_TYPES,
    OBJECT_TYPES,
    EventRecord,
    ExtractionResult,
    ExtractionSummary,
    ObjectCentricLog,
    ObjectRecord,
    TypeSchema,
)

logger = logging.getLogger(__name__)


class LogAssembler:
    """
    Accumulates log parts for one run and assembles them once.

    Not thread-safe: per-job results are handed over by the run orchestrator
    after the parallel phase.
    """

    def __init__(
        self,
        object_types: Sequence[TypeSchema] = OBJECT_TYPES,
        event_types: Sequence[TypeSchema] = EVENT_TYPES,
    ):
        self._object_types = tuple(object_types)
        self._event_types = tuple(event_types)
        self._objects: List[ObjectRecord] = []
        self._events: List[EventRecord] = []
        self._anomalies: List[Anomaly] = []
        self._skipped: List[str] = []
        self._job_count = 0

    def add_job(self, events: Iterable[EventRecord], anomalies: Iterable[Anomaly] = ()) -> None:
        """Add one successfully derived job."""
        self._events.extend(events)
        self._anomalies.extend(anomalies)
        self._job_count += 1

    def skip_job(self, job_id: Optional[str], anomalies: Iterable[Anomaly]) -> None:
        """Record a job that was skipped; its anomalies explain why."""
        if job_id is not None:
            self._skipped.append(job_id)
        self._anomalies.extend(anomalies)

    def add_objects(self, objects: Iterable[ObjectRecord]) -> None:
        self._objects.extend(objects)

    def _ordered_objects(self) -> Tuple[ObjectRecord, ...]:
        type_order = {schema.name: i for i, schema in enumerate(self._object_types)}
        return tuple(sorted(
            self._objects,
            key=lambda o: (type_order.get(o.object_type, len(type_order)), o.object_type, o.id),
        ))

    def _ordered_events(self) -> Tuple[EventRecord, ...]:
        # Stable: events at the same time keep job order, then emission order
        return tuple(sorted(self._events, key=lambda e: e.time))

    def assemble(self) -> ExtractionResult:
        """
        Check and freeze the log.

        Returns:
            ExtractionResult with the log and its summary

        Raises:
            DataIntegrityError: If any identifier collides or any
                relationship dangles
        """
        objects = self._ordered_objects()
        events = self._ordered_events()

        verify_integrity(objects, events, self._object_types, self._event_types)

        log = ObjectCentricLog(
            object_types=self._object_types,
            event_types=self._event_types,
            objects=objects,
            events=events,
        )
        summary = ExtractionSummary(
            job_count=self._job_count,
            object_count=len(objects),
            event_count=len(events),
            objects_by_type=dict(Counter(o.object_type for o in objects)),
            events_by_type=dict(Counter(e.event_type for e in events)),
            anomalies=tuple(self._anomalies),
            skipped_jobs=tuple(self._skipped),
        )
        logger.info(
            "Assembled event log: %d objects, %d events, %d warning(s), %d job(s) skipped",
            summary.object_count, summary.event_count, summary.warning_count,
            len(summary.skipped_jobs),
        )
        return ExtractionResult(log=log, summary=summary)

"""
Extraction run - from queue captures to a checked object-centric event log.

DETERMINISM GUARANTEES:
- Captures are grouped per job in the order supplied
- Jobs are processed and collected in sorted job id order
- Event ids depend only on the job and its own captures
- Same captures -> same log, whatever max_workers is

CONCURRENCY MODEL:
- max_workers=1: every job is folded in the calling thread
- max_workers>1: jobs are folded in a thread pool; the entity registry is
  the only shared structure and serializes its own updates

FAILURE SEMANTICS:
- A job whose captures cannot be replayed is skipped and reported as an
  INVALID_INPUT anomaly; the other jobs complete normally
- A row rejected at ingestion skips only its own job, never the capture
- An integrity violation in the assembled log aborts the run with
  DataIntegrityError; no partial log is returned
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from squeue_ocel.anomalies import Anomaly, AnomalyKind, record_anomaly
from squeue_ocel.assembler import LogAssembler
from squeue_ocel.derive import JobDerivation, derive_job_events
from squeue_ocel.errors import InputError
from squeue_ocel.log import ExtractionResult
from squeue_ocel.models import CaptureRecord
from squeue_ocel.reconstruct import reconstruct_job
from squeue_ocel.registry import EntityRegistry
from squeue_ocel.settings import ExtractionSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobOutcome:
    """
    Result of folding one job.

    derivation is None when the job was skipped. job_id is None only for a
    rejected row whose job id could not be read.
    """

    job_id: Optional[str]
    derivation: Optional[JobDerivation]
    anomalies: Tuple[Anomaly, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.derivation is None


def group_by_job(records: Iterable[CaptureRecord]) -> Dict[str, List[CaptureRecord]]:
    """Group captures per job id, keeping the supplied order within each job."""
    grouped: Dict[str, List[CaptureRecord]] = {}
    for record in records:
        grouped.setdefault(record.job_id, []).append(record)
    return grouped


def extract_job(
    job_id: str,
    records: Sequence[CaptureRecord],
    registry: EntityRegistry,
) -> JobOutcome:
    """
    Reconstruct, register and derive one job.

    Reconstruction runs to completion before anything is registered, so a
    skipped job leaves no objects behind.
    """
    try:
        reconstruction = reconstruct_job(job_id, records)
    except InputError as e:
        anomalies: List[Anomaly] = []
        record_anomaly(
            anomalies,
            AnomalyKind.INVALID_INPUT,
            job_id,
            f"job skipped: {e.reason}",
            captures=len(records),
        )
        return JobOutcome(job_id=job_id, derivation=None, anomalies=tuple(anomalies))

    for state in reconstruction.states:
        registry.observe_job(state)

    derivation = derive_job_events(reconstruction)
    return JobOutcome(
        job_id=job_id,
        derivation=derivation,
        anomalies=reconstruction.anomalies + derivation.anomalies,
    )


def reject_inputs(
    errors: Iterable[InputError],
    grouped: Dict[str, List[CaptureRecord]],
) -> List[JobOutcome]:
    """
    Turn inputs rejected at ingestion into skipped-job outcomes.

    Every capture of a job with a rejected row is dropped from grouped, so
    the job is skipped as a whole rather than replayed from a partial
    history. Rows whose job id was unreadable yield an anomaly with no job.
    """
    reasons: Dict[Optional[str], List[str]] = {}
    for error in errors:
        reasons.setdefault(error.job_id, []).append(error.reason)

    outcomes = []
    for job_id in sorted(reasons, key=lambda j: (j is None, j or "")):
        dropped = grouped.pop(job_id, []) if job_id is not None else []
        anomalies: List[Anomaly] = []
        for reason in reasons[job_id]:
            record_anomaly(
                anomalies,
                AnomalyKind.INVALID_INPUT,
                job_id,
                f"job skipped: {reason}" if job_id is not None else f"row rejected: {reason}",
                captures=len(dropped),
            )
        outcomes.append(JobOutcome(job_id=job_id, derivation=None, anomalies=tuple(anomalies)))
    return outcomes


def _run_jobs(
    grouped: Dict[str, List[CaptureRecord]],
    registry: EntityRegistry,
    max_workers: int,
) -> List[JobOutcome]:
    job_ids = sorted(grouped)

    if max_workers == 1 or len(job_ids) <= 1:
        return [extract_job(job_id, grouped[job_id], registry) for job_id in job_ids]

    # Results stored by submission index, not completion order
    outcomes: List[Optional[JobOutcome]] = [None] * len(job_ids)
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="squeue_ocel") as executor:
        future_to_index: Dict[Future, int] = {
            executor.submit(extract_job, job_id, grouped[job_id], registry): i
            for i, job_id in enumerate(job_ids)
        }
        for future in as_completed(future_to_index):
            outcomes[future_to_index[future]] = future.result()
    return outcomes


def extract_event_log(
    records: Iterable[CaptureRecord],
    settings: Optional[ExtractionSettings] = None,
    rejected: Iterable[InputError] = (),
) -> ExtractionResult:
    """
    Build the object-centric event log for a set of queue captures.

    Args:
        records: Timestamped captures (full rows or deltas) of any number of
            jobs, already parsed; see ingestion.py
        settings: Run options; defaults to ExtractionSettings()
        rejected: Rows rejected at ingestion (SnapshotCapture.rejected);
            each affected job is skipped

    Returns:
        ExtractionResult with the log and summary (counts, anomalies,
        skipped jobs)

    Raises:
        DataIntegrityError: If the assembled log has duplicate identifiers
            or dangling relationships
    """
    settings = settings or ExtractionSettings()
    grouped = group_by_job(records)
    rejected_outcomes = reject_inputs(rejected, grouped)
    logger.info(
        "Extracting event log for %d job(s) from %d capture(s) (max_workers=%d)",
        len(grouped), sum(len(r) for r in grouped.values()), settings.max_workers,
    )

    registry = EntityRegistry(command_basename=settings.command_basename)
    assembler = LogAssembler()

    for outcome in rejected_outcomes + _run_jobs(grouped, registry, settings.max_workers):
        if outcome.skipped:
            logger.warning("Skipped job %s", outcome.job_id)
            assembler.skip_job(outcome.job_id, outcome.anomalies)
        else:
            assembler.add_job(outcome.derivation.events, outcome.anomalies)

    logger.debug("Registered objects per type: %s", registry.counts())
    assembler.add_objects(registry.objects())
    return assembler.assemble()

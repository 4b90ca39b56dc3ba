"""
squeue_ocel - Object-centric event logs from batch scheduler queue captures.

Takes periodic captures of the scheduler queue (full rows or per-job
deltas), replays them into per-job states, derives lifecycle events and
assembles a checked object-centric event log of jobs, accounts, groups,
partitions and hosts.

Constraints:
- In-memory only; no polling, no file access
- Anomalies are reported, never repaired
- Identifier collisions abort the run

The queue observes. The log records.
"""

from squeue_ocel.errors import DataIntegrityError, ExtractionError, InputError
from squeue_ocel.extraction import extract_event_log
from squeue_ocel.models import CaptureRecord, JobObservation, JobStateDelta
from squeue_ocel.settings import ExtractionSettings

__all__ = [
    "CaptureRecord",
    "DataIntegrityError",
    "ExtractionError",
    "ExtractionSettings",
    "InputError",
    "JobObservation",
    "JobStateDelta",
    "extract_event_log",
]

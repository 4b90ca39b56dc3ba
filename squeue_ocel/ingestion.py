"""
Ingestion - parsing of already-loaded queue captures into typed records.

Reading files and polling the scheduler happen elsewhere. This module takes
the decoded JSON values those collaborators produce and turns them into
CaptureRecords the extraction core accepts.

Rules:
------
1. Validate every field strictly (pydantic)
2. Reject malformed rows LOUDLY with InputError (one row, never the whole capture)
3. NO repair, NO guessing
4. Idempotent: parsing the same value twice gives equal records

Capture names:
--------------
Capture files are named after their capture time with ':' replaced by '-'
so the name is valid on every filesystem, e.g.

    2025-01-04T00-55-04.789009695+00-00.json
    DELTA-2025-01-04T00-56-04.123456789+00-00.json
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Tuple, Union

from pydantic import ValidationError

from squeue_ocel.errors import InputError
from squeue_ocel.models import CaptureRecord, JobObservation, JobStateDelta, ensure_utc

logger = logging.getLogger(__name__)

DELTA_PREFIX = "DELTA-"

_CAPTURE_NAME = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})T"
    r"(?P<hour>\d{2})-(?P<minute>\d{2})-(?P<second>\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?:(?P<utc>Z)|(?P<sign>[+-])(?P<off_hour>\d{2})-(?P<off_minute>\d{2}))?$"
)


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    suffix = f" (+{len(details) - 1} more)" if len(details) > 1 else ""
    return f"{location}: {first.get('msg')}{suffix}"


def parse_capture_time(name: str) -> datetime:
    """
    Parse a capture time from a capture file name or stem.

    A ".json" suffix and a "DELTA-" prefix are ignored. Fractions beyond
    microseconds are truncated. A name without offset is taken to be UTC.

    Raises:
        InputError: If the name does not encode a capture time
    """
    stem = name
    if stem.endswith(".json"):
        stem = stem[: -len(".json")]
    if stem.startswith(DELTA_PREFIX):
        stem = stem[len(DELTA_PREFIX):]

    match = _CAPTURE_NAME.match(stem)
    if match is None:
        raise InputError(None, f"Invalid capture time name: {name!r}")

    fraction = (match.group("fraction") or "")[:6]
    text = f"{match.group('date')}T{match.group('hour')}:{match.group('minute')}:{match.group('second')}"
    if fraction:
        text += f".{fraction.ljust(6, '0')}"
    if match.group("sign"):
        text += f"{match.group('sign')}{match.group('off_hour')}:{match.group('off_minute')}"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise InputError(None, f"Invalid capture time name: {name!r}") from e

    if match.group("utc") or parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return ensure_utc(parsed)


def is_delta_name(name: str) -> bool:
    return name.startswith(DELTA_PREFIX)


def parse_snapshot(row: Mapping[str, Any]) -> JobObservation:
    """
    Parse one squeue row.

    Raises:
        InputError: If the row is not a mapping or fails validation
    """
    if not isinstance(row, Mapping):
        raise InputError(None, f"Snapshot row must be an object, got {type(row).__name__}")
    try:
        return JobObservation.model_validate(dict(row))
    except ValidationError as e:
        job_id = row.get("job_id")
        raise InputError(job_id if isinstance(job_id, str) else None, _first_error(e)) from e


def parse_delta(job_id: str, changes: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]) -> JobStateDelta:
    """
    Parse one delta in its wire shape (list of single-key objects or a mapping).

    Raises:
        InputError: If an entry is malformed or a field fails validation
    """
    try:
        return JobStateDelta.from_changes(changes)
    except ValidationError as e:
        raise InputError(job_id, _first_error(e)) from e
    except (TypeError, ValueError) as e:
        raise InputError(job_id, str(e)) from e


@dataclass(frozen=True)
class SnapshotCapture:
    """
    One full queue capture, parsed row by row.

    Attributes:
        records: One record per valid row
        rejected: One InputError per malformed row; job_id is set when the
            row's job id could be read
    """

    records: Tuple[CaptureRecord, ...]
    rejected: Tuple[InputError, ...] = ()


def snapshot_records(captured_at: datetime, rows: Iterable[Mapping[str, Any]]) -> SnapshotCapture:
    """
    Turn one full queue capture (all rows seen at captured_at) into records.

    A malformed row does not stop the capture: it is returned in rejected
    so the run can skip that one job (see extract_event_log).
    """
    records: List[CaptureRecord] = []
    rejected: List[InputError] = []
    for row in rows:
        try:
            observation = parse_snapshot(row)
        except InputError as e:
            logger.warning("Rejected row in capture %s: %s", captured_at.isoformat(), e)
            rejected.append(e)
            continue
        records.append(CaptureRecord(captured_at, observation.job_id, observation))
    return SnapshotCapture(records=tuple(records), rejected=tuple(rejected))


def delta_record(
    captured_at: datetime,
    job_id: str,
    changes: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]],
) -> CaptureRecord:
    """
    Turn one delta capture of one job into a record.

    Raises:
        InputError: If the delta is malformed
    """
    return CaptureRecord(captured_at, job_id, parse_delta(job_id, changes))


def job_capture_record(job_id: str, name: str, value: Any) -> CaptureRecord:
    """
    Turn one per-job capture file (name + decoded JSON) into a record.

    "DELTA-" names hold a delta, other names a full row.

    Raises:
        InputError: If the name or the content is malformed
    """
    captured_at = parse_capture_time(name)
    if is_delta_name(name):
        return delta_record(captured_at, job_id, value)
    observation = parse_snapshot(value)
    return CaptureRecord(captured_at, job_id, observation)

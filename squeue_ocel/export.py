"""
Log export - deterministic, JSON-ready views of a finished extraction.

Produces OCEL 2.0 JSON-shaped dictionaries. Writing them anywhere is the
caller's business.

Guarantees:
- Same log -> equal output (ordering comes from the assembled log)
- Timestamps rendered as ISO 8601 UTC
- No data added, dropped or reinterpreted
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List

from squeue_ocel.log import (
    EventRecord,
    ExtractionResult,
    ExtractionSummary,
    ObjectCentricLog,
    ObjectRecord,
    Relationship,
    TypeSchema,
)


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _relationships(relationships: Iterable[Relationship]) -> List[Dict[str, str]]:
    return [{"objectId": rel.object_id, "qualifier": rel.qualifier} for rel in relationships]


def _type_schema(schema: TypeSchema) -> Dict[str, Any]:
    return {
        "name": schema.name,
        "attributes": [
            {"name": a.name, "type": a.attribute_type.value} for a in schema.attributes
        ],
    }


def _event(event: EventRecord) -> Dict[str, Any]:
    return {
        "id": event.id,
        "type": event.event_type,
        "time": event.time.isoformat(),
        "attributes": [
            {"name": a.name, "value": _json_value(a.value)} for a in event.attributes
        ],
        "relationships": _relationships(event.relationships),
    }


def _object(obj: ObjectRecord) -> Dict[str, Any]:
    return {
        "id": obj.id,
        "type": obj.object_type,
        "attributes": [
            {"name": a.name, "value": _json_value(a.value), "time": a.time.isoformat()}
            for a in obj.attributes
        ],
        "relationships": _relationships(obj.relationships),
    }


def log_to_ocel_json(log: ObjectCentricLog) -> Dict[str, Any]:
    """Render the log in the OCEL 2.0 JSON layout."""
    return {
        "objectTypes": [_type_schema(s) for s in log.object_types],
        "eventTypes": [_type_schema(s) for s in log.event_types],
        "objects": [_object(o) for o in log.objects],
        "events": [_event(e) for e in log.events],
    }


def summary_to_dict(summary: ExtractionSummary) -> Dict[str, Any]:
    """Render the run summary with explicit field ordering."""
    return {
        "job_count": summary.job_count,
        "object_count": summary.object_count,
        "event_count": summary.event_count,
        "objects_by_type": dict(sorted(summary.objects_by_type.items())),
        "events_by_type": dict(sorted(summary.events_by_type.items())),
        "warning_count": summary.warning_count,
        "skipped_jobs": list(summary.skipped_jobs),
        "warnings": [a.to_dict() for a in summary.anomalies],
    }


def result_to_dict(result: ExtractionResult) -> Dict[str, Any]:
    return {
        "ocel": log_to_ocel_json(result.log),
        "summary": summary_to_dict(result.summary),
    }

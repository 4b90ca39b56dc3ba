"""
Hard integrity checks for an assembled event log.

These checks FAIL LOUDLY. A log with colliding identifiers or dangling
references cannot be trusted, so no partial log is ever returned.

Invariants:
1. EVENT IDS: every event id is distinct
2. OBJECT IDS: every object id is distinct within its object type
3. REFERENCES: every relationship (from events and from objects) targets an
   assembled object
4. TYPES: every event and object uses a declared type
"""

import logging
from collections import Counter
from typing import Iterable, List, Sequence

from squeue_ocel.errors import DataIntegrityError
from squeue_ocel.log import EventRecord, ObjectRecord, TypeSchema

logger = logging.getLogger(__name__)


def find_integrity_violations(
    objects: Sequence[ObjectRecord],
    events: Sequence[EventRecord],
    object_types: Iterable[TypeSchema] = (),
    event_types: Iterable[TypeSchema] = (),
) -> List[str]:
    """
    Collect every integrity violation, in a stable order.

    Type declarations are only checked when given.
    """
    violations: List[str] = []

    event_counts = Counter(event.id for event in events)
    for event_id in sorted(i for i, n in event_counts.items() if n > 1):
        violations.append(f"duplicate event id '{event_id}' ({event_counts[event_id]} events)")

    object_counts = Counter((obj.object_type, obj.id) for obj in objects)
    for (object_type, object_id) in sorted(k for k, n in object_counts.items() if n > 1):
        violations.append(
            f"duplicate {object_type} object id '{object_id}' "
            f"({object_counts[(object_type, object_id)]} objects)"
        )

    known_ids = {obj.id for obj in objects}
    for event in events:
        for rel in event.relationships:
            if rel.object_id not in known_ids:
                violations.append(
                    f"event '{event.id}' references missing object '{rel.object_id}' ({rel.qualifier})"
                )
    for obj in objects:
        for rel in obj.relationships:
            if rel.object_id not in known_ids:
                violations.append(
                    f"object '{obj.id}' references missing object '{rel.object_id}' ({rel.qualifier})"
                )

    declared_object_types = {schema.name for schema in object_types}
    if declared_object_types:
        for object_type in sorted({obj.object_type for obj in objects} - declared_object_types):
            violations.append(f"undeclared object type '{object_type}'")

    declared_event_types = {schema.name for schema in event_types}
    if declared_event_types:
        for event_type in sorted({event.event_type for event in events} - declared_event_types):
            violations.append(f"undeclared event type '{event_type}'")

    return violations


def verify_integrity(
    objects: Sequence[ObjectRecord],
    events: Sequence[EventRecord],
    object_types: Iterable[TypeSchema] = (),
    event_types: Iterable[TypeSchema] = (),
) -> None:
    """
    Raise if the log violates any integrity invariant.

    Raises:
        DataIntegrityError: Naming every offending duplicate or dangling reference
    """
    violations = find_integrity_violations(objects, events, object_types, event_types)
    if violations:
        logger.error(
            "Event log integrity check failed: %d violation(s), first: %s",
            len(violations), violations[0],
        )
        raise DataIntegrityError(violations)

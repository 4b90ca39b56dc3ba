"""
Object-centric event log data structures.

Records in this module are created once during assembly and are immutable
thereafter. Events relate to any number of objects; objects carry
time-versioned attributes and relationships to other objects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from squeue_ocel.anomalies import Anomaly
from squeue_ocel.identifiers import EntityKind


class AttributeType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIME = "time"


class EventCategory(str, Enum):
    """Event types derived from job lifecycle transitions."""

    SUBMIT = "Submit Job"
    STARTED = "Job Started"
    ENDING = "Job Ending"
    COMPLETED = "Job Completed"
    CANCELLED = "Job Cancelled"
    FAILED = "Job Failed"
    TIMEOUT = "Job Timeout"
    OUT_OF_MEMORY = "Job Out Of Memory"

    @property
    def slug(self) -> str:
        """Short prefix used in event ids."""
        return _EVENT_SLUGS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_CATEGORIES


_EVENT_SLUGS = {
    EventCategory.SUBMIT: "submit",
    EventCategory.STARTED: "start",
    EventCategory.ENDING: "ending",
    EventCategory.COMPLETED: "completed",
    EventCategory.CANCELLED: "cancelled",
    EventCategory.FAILED: "failed",
    EventCategory.TIMEOUT: "timeout",
    EventCategory.OUT_OF_MEMORY: "oom",
}

TERMINAL_CATEGORIES = frozenset({
    EventCategory.COMPLETED,
    EventCategory.CANCELLED,
    EventCategory.FAILED,
    EventCategory.TIMEOUT,
    EventCategory.OUT_OF_MEMORY,
})


@dataclass(frozen=True)
class TypeAttribute:
    name: str
    attribute_type: AttributeType


@dataclass(frozen=True)
class TypeSchema:
    """Declared object or event type: name plus typed attributes."""

    name: str
    attributes: Tuple[TypeAttribute, ...] = ()


@dataclass(frozen=True)
class Relationship:
    """Reference to an object (by canonical id string) with a qualifier."""

    object_id: str
    qualifier: str


@dataclass(frozen=True)
class EventAttribute:
    name: str
    value: Any


@dataclass(frozen=True)
class EventRecord:
    """
    One event in the log.

    Attributes:
        id: Globally unique event id
        event_type: EventCategory value (the declared event type name)
        time: When the event happened (UTC)
        attributes: Event attribute values (e.g. failure reason)
        relationships: Related objects in a stable order
    """

    id: str
    event_type: str
    time: datetime
    attributes: Tuple[EventAttribute, ...] = ()
    relationships: Tuple[Relationship, ...] = ()


@dataclass(frozen=True)
class ObjectAttribute:
    """One version of an object attribute, valid from `time` on."""

    name: str
    value: Any
    time: datetime


@dataclass(frozen=True)
class ObjectRecord:
    """
    One object in the log.

    id is the canonical, type-qualified identifier string.
    """

    id: str
    object_type: str
    attributes: Tuple[ObjectAttribute, ...] = ()
    relationships: Tuple[Relationship, ...] = ()

    def attribute_history(self, name: str) -> Tuple[ObjectAttribute, ...]:
        return tuple(a for a in self.attributes if a.name == name)

    def latest(self, name: str) -> Optional[Any]:
        history = self.attribute_history(name)
        return history[-1].value if history else None


OBJECT_TYPES: Tuple[TypeSchema, ...] = (
    TypeSchema(
        EntityKind.JOB.value,
        (
            TypeAttribute("state", AttributeType.STRING),
            TypeAttribute("command", AttributeType.STRING),
            TypeAttribute("work_dir", AttributeType.STRING),
            TypeAttribute("cpus", AttributeType.INTEGER),
            TypeAttribute("min_memory", AttributeType.STRING),
        ),
    ),
    TypeSchema(EntityKind.ACCOUNT.value),
    TypeSchema(EntityKind.GROUP.value),
    TypeSchema(EntityKind.HOST.value),
    TypeSchema(EntityKind.PARTITION.value),
)

EVENT_TYPES: Tuple[TypeSchema, ...] = tuple(
    TypeSchema(
        category.value,
        (TypeAttribute("reason", AttributeType.STRING),)
        if category == EventCategory.FAILED else (),
    )
    for category in EventCategory
)


@dataclass(frozen=True)
class ObjectCentricLog:
    """The finished log value handed to the export collaborator."""

    object_types: Tuple[TypeSchema, ...]
    event_types: Tuple[TypeSchema, ...]
    objects: Tuple[ObjectRecord, ...]
    events: Tuple[EventRecord, ...]


@dataclass(frozen=True)
class ExtractionSummary:
    """
    Summary counters for one run.

    warning_count counts every anomaly, including skipped jobs.
    """

    job_count: int
    object_count: int
    event_count: int
    objects_by_type: Dict[str, int] = field(default_factory=dict)
    events_by_type: Dict[str, int] = field(default_factory=dict)
    anomalies: Tuple[Anomaly, ...] = ()
    skipped_jobs: Tuple[str, ...] = ()

    @property
    def warning_count(self) -> int:
        return len(self.anomalies)


@dataclass(frozen=True)
class ExtractionResult:
    log: ObjectCentricLog
    summary: ExtractionSummary

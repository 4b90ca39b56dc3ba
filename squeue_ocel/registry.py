"""
Entity Registry - interns raw identifiers into canonical log objects.

The registry provides:
- Idempotent registration: same kind + raw id -> same CanonicalId, one object
- Time-versioned attributes: a value is stamped when first observed and a new
  version is appended only when a later observation differs
- Deduplicated relationships between objects

The registry is scoped to one extraction run and shared by all jobs of that
run. Insert-or-lookup and every mutation happen under one lock; entries are
never removed.
"""

import logging
import posixpath
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from squeue_ocel.identifiers import CanonicalId, EntityKind
from squeue_ocel.log import ObjectAttribute, ObjectRecord, Relationship
from squeue_ocel.models import JobObservation
from squeue_ocel.reconstruct import MaterializedState

logger = logging.getLogger(__name__)

# Order of object types in the finished log
_KIND_ORDER = {kind: i for i, kind in enumerate(EntityKind)}


@dataclass
class _EntityEntry:
    """Mutable registry entry. Frozen into an ObjectRecord at the end of the run."""

    cid: CanonicalId
    attributes: List[ObjectAttribute] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    latest: Dict[str, Any] = field(default_factory=dict)

    def freeze(self) -> ObjectRecord:
        return ObjectRecord(
            id=str(self.cid),
            object_type=self.cid.kind.value,
            attributes=tuple(self.attributes),
            relationships=tuple(self.relationships),
        )


def command_name(command: str) -> str:
    """Last path segment of a command ("/home/u/run.sh" -> "run.sh")."""
    return posixpath.basename(command.rstrip("/")) or command


class EntityRegistry:
    """
    Run-scoped registry of canonical objects.

    Thread-safe: jobs folded in parallel may register the same account,
    group, partition or host concurrently.
    """

    def __init__(self, command_basename: bool = True):
        """
        Initialize registry.

        Args:
            command_basename: Record only the last path segment of job commands
        """
        self._command_basename = command_basename
        self._entries: Dict[CanonicalId, _EntityEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def register(self, kind: EntityKind, raw_id: str) -> CanonicalId:
        """
        Register an entity, or look it up if already registered.

        Returns:
            The canonical id. Registering the same kind and raw id again
            returns an equal id and creates no second object.
        """
        cid = CanonicalId(kind, raw_id)
        with self._lock:
            if cid not in self._entries:
                self._entries[cid] = _EntityEntry(cid)
                logger.debug("Registered %s", cid)
        return cid

    def _entry(self, cid: CanonicalId) -> _EntityEntry:
        entry = self._entries.get(cid)
        if entry is None:
            raise KeyError(f"Entity not registered: {cid}")
        return entry

    def stamp_attribute(self, cid: CanonicalId, name: str, value: Any, observed_at: datetime) -> bool:
        """
        Record an attribute value observed at observed_at.

        Returns:
            True if a new version was appended, False if the value equals
            the latest recorded one

        Raises:
            KeyError: If cid is not registered
        """
        with self._lock:
            entry = self._entry(cid)
            if name in entry.latest and entry.latest[name] == value:
                return False
            entry.latest[name] = value
            entry.attributes.append(ObjectAttribute(name, value, observed_at))
            return True

    def relate(self, source: CanonicalId, target: CanonicalId, qualifier: str) -> bool:
        """
        Add a relationship source -> target unless already present.

        Raises:
            KeyError: If either end is not registered
        """
        relationship = Relationship(str(target), qualifier)
        with self._lock:
            entry = self._entry(source)
            self._entry(target)
            if relationship in entry.relationships:
                return False
            entry.relationships.append(relationship)
            return True

    def _job_attributes(self, observation: JobObservation) -> Tuple[Tuple[str, Any], ...]:
        command = observation.command
        if self._command_basename:
            command = command_name(command)
        return (
            ("state", str(observation.state)),
            ("command", command),
            ("work_dir", observation.work_dir),
            ("cpus", observation.cpus),
            ("min_memory", observation.min_memory),
        )

    def observe_job(self, state: MaterializedState) -> CanonicalId:
        """
        Register a job and everything it references from one materialized state.

        Attributes are stamped with the capture time; values identical to the
        latest version are not re-stamped. New account, group, partition or
        host values add relationships; old ones are kept.
        """
        observation = state.observation
        observed_at = state.captured_at

        job = self.register(EntityKind.JOB, observation.job_id)
        for name, value in self._job_attributes(observation):
            self.stamp_attribute(job, name, value, observed_at)

        references: List[Tuple[EntityKind, Optional[str], str]] = [
            (EntityKind.ACCOUNT, observation.account, "submitted by"),
            (EntityKind.GROUP, observation.group, "submitted by group"),
            (EntityKind.PARTITION, observation.partition, "submitted on"),
            (EntityKind.HOST, observation.exec_host, "executed on"),
        ]
        for kind, raw_id, qualifier in references:
            if not raw_id:
                continue
            self.relate(job, self.register(kind, raw_id), qualifier)
        return job

    def counts(self) -> Dict[str, int]:
        """Number of registered objects per object type."""
        with self._lock:
            return dict(Counter(cid.kind.value for cid in self._entries))

    def objects(self) -> Tuple[ObjectRecord, ...]:
        """Freeze every entry, ordered by object type then id."""
        with self._lock:
            ordered = sorted(
                self._entries.values(),
                key=lambda e: (_KIND_ORDER[e.cid.kind], str(e.cid)),
            )
            return tuple(entry.freeze() for entry in ordered)

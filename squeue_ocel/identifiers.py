"""
Canonical, type-qualified identifiers.

Accounts, groups, partitions, hosts and jobs are all plain strings in the
scheduler output and can collide ("research" may be both an account and a
partition). Every object in the log is therefore keyed by its kind plus the
raw identifier, rendered as "<prefix>_<raw>".
"""

from dataclasses import dataclass
from enum import Enum


class EntityKind(str, Enum):
    """Kinds of object in the log. The value is the object type name."""

    JOB = "Job"
    ACCOUNT = "Account"
    GROUP = "Group"
    PARTITION = "Partition"
    HOST = "Host"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES = {
    EntityKind.JOB: "job",
    EntityKind.ACCOUNT: "acc",
    EntityKind.GROUP: "group",
    EntityKind.PARTITION: "part",
    EntityKind.HOST: "host",
}


@dataclass(frozen=True, order=True)
class CanonicalId:
    """
    Type-qualified identifier of one object.

    Two CanonicalIds are equal only if both kind and raw identifier match.
    str() gives the form used as the object id and as relationship target.
    """

    kind: EntityKind
    raw: str

    def __post_init__(self):
        if not isinstance(self.raw, str) or not self.raw:
            raise ValueError(f"Invalid {self.kind.value} identifier: {self.raw!r}")

    @classmethod
    def job(cls, raw: str) -> "CanonicalId":
        return cls(EntityKind.JOB, raw)

    @classmethod
    def account(cls, raw: str) -> "CanonicalId":
        return cls(EntityKind.ACCOUNT, raw)

    @classmethod
    def group(cls, raw: str) -> "CanonicalId":
        return cls(EntityKind.GROUP, raw)

    @classmethod
    def partition(cls, raw: str) -> "CanonicalId":
        return cls(EntityKind.PARTITION, raw)

    @classmethod
    def host(cls, raw: str) -> "CanonicalId":
        return cls(EntityKind.HOST, raw)

    def __str__(self) -> str:
        return f"{self.kind.prefix}_{self.raw}"

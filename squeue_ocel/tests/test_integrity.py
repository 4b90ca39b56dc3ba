"""
Log Assembly and Integrity Tests

THESE TESTS ENFORCE THE IDENTIFIER INTEGRITY OF THE ASSEMBLED LOG.

Invariants Tested:
------------------
- Duplicate event ids abort assembly
- Duplicate object ids within a type abort assembly
- Dangling relationships (from events or objects) abort assembly
- The error names every offending identifier
- Successful assembly orders events by time and counts per type
"""

import pytest

from conftest import T0, T1, T2
from squeue_ocel.anomalies import Anomaly, AnomalyKind
from squeue_ocel.assembler import LogAssembler
from squeue_ocel.errors import DataIntegrityError
from squeue_ocel.integrity import find_integrity_violations, verify_integrity
from squeue_ocel.log import (
    EVENT_TYPES,
    OBJECT_TYPES,
    EventRecord,
    ObjectRecord,
    Relationship,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def objects():
    return [
        ObjectRecord("job_J1", "Job", relationships=(Relationship("acc_A1", "submitted by"),)),
        ObjectRecord("acc_A1", "Account"),
    ]


@pytest.fixture
def events():
    return [
        EventRecord("start-job_J1-1", "Job Started", T1, relationships=(Relationship("job_J1", "job"),)),
        EventRecord("submit-job_J1-0", "Submit Job", T0, relationships=(
            Relationship("job_J1", "job"),
            Relationship("acc_A1", "submitter"),
        )),
    ]


# =============================================================================
# Violations
# =============================================================================

class TestIntegrityViolations:

    def test_clean_log_has_no_violations(self, objects, events):
        assert find_integrity_violations(objects, events, OBJECT_TYPES, EVENT_TYPES) == []
        verify_integrity(objects, events, OBJECT_TYPES, EVENT_TYPES)

    def test_duplicate_event_id(self, objects, events):
        events.append(EventRecord("submit-job_J1-0", "Submit Job", T2))

        with pytest.raises(DataIntegrityError) as exc:
            verify_integrity(objects, events)

        assert "submit-job_J1-0" in str(exc.value)
        assert exc.value.violations == ["duplicate event id 'submit-job_J1-0' (2 events)"]

    def test_duplicate_object_id_within_type(self, objects, events):
        objects.append(ObjectRecord("acc_A1", "Account"))

        with pytest.raises(DataIntegrityError) as exc:
            verify_integrity(objects, events)

        assert "duplicate Account object id 'acc_A1'" in exc.value.violations[0]

    def test_same_id_different_types_is_not_a_duplicate(self, events):
        objects = [
            ObjectRecord("job_J1", "Job"),
            ObjectRecord("acc_A1", "Account"),
            ObjectRecord("acc_A1", "Group"),
        ]

        violations = find_integrity_violations(objects, events)

        assert not any("duplicate" in v for v in violations)

    def test_dangling_event_relationship(self, objects, events):
        events.append(EventRecord("ending-job_J1-2", "Job Ending", T2, relationships=(
            Relationship("host_node09", "executed on"),
        )))

        with pytest.raises(DataIntegrityError) as exc:
            verify_integrity(objects, events)

        assert "host_node09" in str(exc.value)

    def test_dangling_object_relationship(self, events):
        objects = [ObjectRecord("job_J1", "Job", relationships=(Relationship("part_P1", "submitted on"),))]

        violations = find_integrity_violations(objects, events)

        assert "object 'job_J1' references missing object 'part_P1' (submitted on)" in violations

    def test_undeclared_types(self, objects, events):
        events.append(EventRecord("x-1", "Job Exploded", T2))

        violations = find_integrity_violations(objects, events, OBJECT_TYPES, EVENT_TYPES)

        assert violations == ["undeclared event type 'Job Exploded'"]

    def test_error_message_truncates_long_lists(self):
        error = DataIntegrityError([f"violation {i}" for i in range(8)])

        assert "8 violation(s)" in str(error)
        assert "(+3 more)" in str(error)
        assert len(error.violations) == 8


# =============================================================================
# Assembler
# =============================================================================

class TestLogAssembler:

    def test_assemble_orders_and_counts(self, objects, events):
        assembler = LogAssembler()
        assembler.add_job(events)
        assembler.add_objects(objects)

        result = assembler.assemble()

        assert [e.id for e in result.log.events] == ["submit-job_J1-0", "start-job_J1-1"]
        assert [o.id for o in result.log.objects] == ["job_J1", "acc_A1"]
        assert result.log.object_types == OBJECT_TYPES
        assert result.log.event_types == EVENT_TYPES
        assert result.summary.object_count == 2
        assert result.summary.event_count == 2
        assert result.summary.events_by_type == {"Submit Job": 1, "Job Started": 1}
        assert result.summary.job_count == 1

    def test_anomalies_and_skipped_jobs_in_summary(self, objects, events):
        warning = Anomaly(AnomalyKind.SUPPRESSED_TRANSITION, "J1", "RUNNING -> PENDING")
        skipped = Anomaly(AnomalyKind.INVALID_INPUT, "J2", "job skipped")
        assembler = LogAssembler()
        assembler.add_job(events, [warning])
        assembler.skip_job("J2", [skipped])
        assembler.add_objects(objects)

        summary = assembler.assemble().summary

        assert summary.warning_count == 2
        assert summary.anomalies == (warning, skipped)
        assert summary.skipped_jobs == ("J2",)

    def test_violation_returns_no_log(self, objects, events):
        assembler = LogAssembler()
        assembler.add_job(events + [events[0]])
        assembler.add_objects(objects)

        with pytest.raises(DataIntegrityError):
            assembler.assemble()

    def test_declared_schemas(self):
        job_schema = next(s for s in OBJECT_TYPES if s.name == "Job")
        failed_schema = next(s for s in EVENT_TYPES if s.name == "Job Failed")

        assert [a.name for a in job_schema.attributes] == ["state", "command", "work_dir", "cpus", "min_memory"]
        assert [a.name for a in failed_schema.attributes] == ["reason"]
        assert {s.name for s in EVENT_TYPES} == {
            "Submit Job", "Job Started", "Job Ending", "Job Completed",
            "Job Cancelled", "Job Failed", "Job Timeout", "Job Out Of Memory",
        }

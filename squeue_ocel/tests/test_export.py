"""
Log Export Tests

Invariants Tested:
------------------
- Export follows the OCEL 2.0 JSON layout
- Export is deterministic and JSON-serializable
- Summary export carries counts and warnings
"""

import json

from conftest import T0, T2, delta, snapshot
from squeue_ocel import extract_event_log
from squeue_ocel.export import log_to_ocel_json, result_to_dict, summary_to_dict


def _result():
    return extract_event_log([
        snapshot(T0),
        delta(T0, state="RUNNING", exec_host="node01"),
        delta(T2, state="FAILED", reason="OutOfMemory"),
        delta(T2, state="PENDING"),
    ])


class TestOcelExport:

    def test_top_level_layout(self):
        exported = log_to_ocel_json(_result().log)

        assert list(exported) == ["objectTypes", "eventTypes", "objects", "events"]

    def test_object_layout(self):
        exported = log_to_ocel_json(_result().log)
        job = next(o for o in exported["objects"] if o["id"] == "job_J1")

        assert job["type"] == "Job"
        assert {"name": "state", "value": "FAILED", "time": T2.isoformat()} in job["attributes"]
        assert {"objectId": "host_node01", "qualifier": "executed on"} in job["relationships"]

    def test_event_layout(self):
        exported = log_to_ocel_json(_result().log)
        failed = next(e for e in exported["events"] if e["type"] == "Job Failed")

        assert failed["time"] == T2.isoformat()
        assert failed["attributes"] == [{"name": "reason", "value": "OutOfMemory"}]
        assert failed["relationships"] == [{"objectId": "job_J1", "qualifier": "job"}]

    def test_type_layout(self):
        exported = log_to_ocel_json(_result().log)
        job_type = next(t for t in exported["objectTypes"] if t["name"] == "Job")

        assert {"name": "cpus", "type": "integer"} in job_type["attributes"]

    def test_deterministic_and_serializable(self):
        first = json.dumps(result_to_dict(_result()), sort_keys=True)
        second = json.dumps(result_to_dict(_result()), sort_keys=True)

        assert first == second


class TestSummaryExport:

    def test_summary_fields(self):
        exported = summary_to_dict(_result().summary)

        assert exported["event_count"] == 3
        assert exported["warning_count"] == 1
        assert exported["warnings"][0]["kind"] == "suppressed_transition"
        assert exported["warnings"][0]["observed_at"] == T2.isoformat()
        assert exported["skipped_jobs"] == []

"""
Shared fixtures for squeue_ocel tests.

Times T0..T3 are one minute apart; every row defaults to a PENDING job J1
submitted at T0 by account A1, group G1 on partition P1.
"""

from datetime import datetime, timedelta, timezone

import pytest

from squeue_ocel.models import CaptureRecord, JobObservation, JobStateDelta

T0 = datetime(2025, 1, 4, 0, 55, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=1)
T2 = T0 + timedelta(minutes=2)
T3 = T0 + timedelta(minutes=3)


def base_row(**overrides):
    """Raw squeue row (JSON-decoded shape)."""
    row = {
        "job_id": "J1",
        "command": "/home/alice/jobs/train.sh",
        "work_dir": "/home/alice/jobs",
        "cpus": 4,
        "min_memory": "8G",
        "submit_time": T0.isoformat(),
        "start_time": None,
        "state": "PENDING",
        "account": "A1",
        "group": "G1",
        "partition": "P1",
        "exec_host": None,
    }
    row.update(overrides)
    return row


def observation(**overrides) -> JobObservation:
    return JobObservation.model_validate(base_row(**overrides))


def snapshot(captured_at, **overrides) -> CaptureRecord:
    obs = observation(**overrides)
    return CaptureRecord(captured_at, obs.job_id, obs)


def delta(captured_at, job_id="J1", **changes) -> CaptureRecord:
    return CaptureRecord(captured_at, job_id, JobStateDelta.model_validate(changes))


@pytest.fixture
def make_observation():
    return observation


@pytest.fixture
def make_snapshot():
    return snapshot


@pytest.fixture
def make_delta():
    return delta


@pytest.fixture
def lifecycle_deltas():
    """J1: PENDING at T0, RUNNING + start at T1, COMPLETING at T2, COMPLETED at T3."""
    return [
        snapshot(T0),
        delta(T1, state="RUNNING", start_time=T1, exec_host="node01"),
        delta(T2, state="COMPLETING"),
        delta(T3, state="COMPLETED"),
    ]

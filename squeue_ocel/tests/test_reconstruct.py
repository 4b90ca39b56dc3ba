"""
Job State Reconstructor Tests

Test Coverage:
--------------
1. Snapshot mode ordering and freshest-wins for equal capture times
2. Delta mode cumulative replay
3. Temporal inversion: warned, still applied, never fatal
4. Missing / malformed base snapshot -> InputError
5. Mid-stream snapshots in delta mode become deltas
"""

import pytest

from conftest import T0, T1, T2, T3, delta, snapshot
from squeue_ocel.anomalies import AnomalyKind
from squeue_ocel.errors import InputError
from squeue_ocel.models import JobField
from squeue_ocel.reconstruct import (
    ReplayMode,
    reconstruct_job,
    replay_deltas,
    replay_snapshots,
)
from squeue_ocel.states import COMPLETED, COMPLETING, PENDING, RUNNING


# =============================================================================
# Snapshot Mode
# =============================================================================

class TestSnapshotReplay:
    """Tests for replay from full snapshots."""

    def test_unordered_snapshots_are_sorted(self):
        records = [
            snapshot(T2, state="COMPLETING", start_time=T1.isoformat()),
            snapshot(T0),
            snapshot(T1, state="RUNNING", start_time=T1.isoformat()),
        ]

        result = replay_snapshots("J1", records)

        assert result.mode == ReplayMode.SNAPSHOT
        assert [s.captured_at for s in result.states] == [T0, T1, T2]
        assert [s.observation.state for s in result.states] == [PENDING, RUNNING, COMPLETING]

    def test_changes_are_differences_to_previous(self):
        records = [snapshot(T0), snapshot(T1, state="RUNNING", start_time=T1.isoformat())]

        result = replay_snapshots("J1", records)

        assert result.initial.changes == ()
        assert result.initial.is_initial
        assert {c.field for c in result.final.changes} == {JobField.STATE, JobField.START_TIME}
        assert result.final.previous.state == PENDING

    def test_later_supplied_snapshot_wins_for_same_time(self):
        """The freshest snapshot known for a capture time is used."""
        records = [
            snapshot(T0),
            snapshot(T1, state="PENDING"),
            snapshot(T1, state="RUNNING"),
        ]

        result = replay_snapshots("J1", records)

        assert len(result.states) == 2
        assert result.final.observation.state == RUNNING

    def test_unchanged_snapshot_yields_empty_changes(self):
        result = replay_snapshots("J1", [snapshot(T0), snapshot(T1)])

        assert result.final.changes == ()

    def test_snapshot_of_other_job_rejected(self):
        with pytest.raises(InputError) as exc:
            replay_snapshots("J1", [snapshot(T0, job_id="J2")])

        assert exc.value.job_id == "J1"

    def test_no_records_rejected(self):
        with pytest.raises(InputError):
            replay_snapshots("J1", [])


# =============================================================================
# Delta Mode
# =============================================================================

class TestDeltaReplay:
    """Tests for replay of a base snapshot followed by deltas."""

    def test_cumulative_replay(self, lifecycle_deltas):
        result = replay_deltas("J1", lifecycle_deltas)

        assert result.mode == ReplayMode.DELTA
        assert [s.observation.state for s in result.states] == [PENDING, RUNNING, COMPLETING, COMPLETED]
        # Fields set by earlier deltas persist
        assert result.final.observation.start_time == T1
        assert result.final.observation.exec_host == "node01"
        assert result.anomalies == ()

    def test_changes_per_state(self, lifecycle_deltas):
        result = replay_deltas("J1", lifecycle_deltas)

        assert [c.field for c in result.states[2].changes] == [JobField.STATE]
        assert result.states[2].previous.state == RUNNING

    def test_backwards_delta_warned_and_applied(self):
        """A delta older than the last applied one is applied with a warning."""
        records = [
            snapshot(T0),
            delta(T2, state="RUNNING"),
            delta(T1, exec_host="node07"),
        ]

        result = replay_deltas("J1", records)

        assert result.final.observation.exec_host == "node07"
        assert len(result.anomalies) == 1
        anomaly = result.anomalies[0]
        assert anomaly.kind == AnomalyKind.TEMPORAL_INVERSION
        assert anomaly.job_id == "J1"
        assert anomaly.details["last_applied"] == T2
        assert anomaly.details["captured_at"] == T1

    def test_equal_timestamps_are_not_inversions(self):
        records = [snapshot(T0), delta(T1, state="RUNNING"), delta(T1, start_time=T1)]

        assert replay_deltas("J1", records).anomalies == ()

    def test_supplied_order_is_kept(self):
        """Deltas are applied in supplied order, not re-sorted."""
        records = [
            snapshot(T0),
            delta(T3, state="RUNNING"),
            delta(T2, state="CANCELLED"),
        ]

        result = replay_deltas("J1", records)

        assert [s.captured_at for s in result.states] == [T0, T3, T2]

    def test_missing_base_snapshot(self):
        with pytest.raises(InputError) as exc:
            replay_deltas("J1", [delta(T1, state="RUNNING")])

        assert "base snapshot" in str(exc.value)

    def test_mid_stream_snapshot_becomes_delta(self):
        records = [
            snapshot(T0),
            delta(T1, state="RUNNING"),
            snapshot(T2, state="COMPLETED", exec_host="node02"),
        ]

        result = replay_deltas("J1", records)

        assert {c.field for c in result.final.changes} == {JobField.STATE, JobField.EXEC_HOST}
        assert result.final.observation.state == COMPLETED


# =============================================================================
# Mode Selection
# =============================================================================

class TestReconstructJob:

    def test_snapshots_only_select_snapshot_mode(self):
        assert reconstruct_job("J1", [snapshot(T0)]).mode == ReplayMode.SNAPSHOT

    def test_any_delta_selects_delta_mode(self, lifecycle_deltas):
        assert reconstruct_job("J1", lifecycle_deltas).mode == ReplayMode.DELTA

    def test_record_of_other_job_rejected(self):
        with pytest.raises(InputError):
            reconstruct_job("J1", [snapshot(T0), delta(T1, job_id="J2", state="RUNNING")])

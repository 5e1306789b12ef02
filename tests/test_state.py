"""
Tests for execution history persistence.
"""

from datetime import datetime, timezone

from atspoke_connector.state import ExecutionHistory, StateManager

STARTED = datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestExecutionHistory:
    def test_success_moves_watermark(self):
        """Test a success moves the watermark."""
        history = ExecutionHistory()
        history.record_run(STARTED, succeeded=True)

        assert history.last_successful_started_on == STARTED
        assert history.last_run_status == "success"

    def test_failure_leaves_watermark(self):
        """Test a failure leaves the watermark."""
        history = ExecutionHistory(last_successful_started_on=STARTED)
        later = datetime(2021, 6, 2, tzinfo=timezone.utc)

        history.record_run(later, succeeded=False)

        assert history.last_successful_started_on == STARTED
        assert history.last_run_started_on == later
        assert history.last_run_status == "failure"


class TestStateManager:
    def test_missing_file(self, tmp_path):
        """Test a missing file gives empty history."""
        history = StateManager(tmp_path / "state.json").load()
        assert history.last_successful_started_on is None

    def test_save_and_load(self, tmp_path):
        """Test history survives a save and load."""
        state_mgr = StateManager(tmp_path / "nested" / "state.json")
        history = ExecutionHistory()
        history.record_run(STARTED, succeeded=True)

        state_mgr.save(history)
        loaded = state_mgr.load()

        assert loaded.last_successful_started_on == STARTED
        assert loaded.last_run_status == "success"
        assert not (tmp_path / "nested" / "state.tmp").exists()

    def test_corrupt_file_starts_fresh(self, tmp_path):
        """Test a corrupt file gives empty history."""
        path = tmp_path / "state.json"
        path.write_text("{not json")

        assert StateManager(path).load() == ExecutionHistory()

    def test_clear(self, tmp_path):
        """Test clear removes the state file."""
        state_mgr = StateManager(tmp_path / "state.json")
        state_mgr.save(ExecutionHistory())

        state_mgr.clear()

        assert not state_mgr.state_file.exists()

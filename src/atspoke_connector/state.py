"""
Execution history persistence.

Remembers when the last successful run started. That timestamp is the
watermark the requests cutoff compares against on the next run.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ExecutionHistory:
    """Start times and outcome of previous runs."""

    last_successful_started_on: datetime | None = None
    last_run_started_on: datetime | None = None
    last_run_status: str = ""  # "success" or "failure"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "last_successful_started_on": (
                self.last_successful_started_on.isoformat()
                if self.last_successful_started_on else None
            ),
            "last_run_started_on": (
                self.last_run_started_on.isoformat() if self.last_run_started_on else None
            ),
            "last_run_status": self.last_run_status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionHistory":
        """Create from JSON dict."""
        def parse_dt(val: str | None) -> datetime | None:
            if val:
                return datetime.fromisoformat(val)
            return None

        return cls(
            last_successful_started_on=parse_dt(data.get("last_successful_started_on")),
            last_run_started_on=parse_dt(data.get("last_run_started_on")),
            last_run_status=data.get("last_run_status", ""),
        )

    def record_run(self, started_on: datetime, succeeded: bool) -> None:
        self.last_run_started_on = started_on
        self.last_run_status = "success" if succeeded else "failure"
        if succeeded:
            self.last_successful_started_on = started_on


class StateManager:
    """
    Manages execution history persistence.

    Usage:
        state_mgr = StateManager("/path/to/state.json")
        history = state_mgr.load()

        # Run...
        history.record_run(started_on, succeeded=True)
        state_mgr.save(history)
    """

    def __init__(self, state_file: str | Path | None = None):
        """
        Initialize state manager.

        Args:
            state_file: Path to state file. If None, uses ~/.atspoke-graph/state.json
        """
        if state_file is None:
            state_file = Path.home() / ".atspoke-graph" / "state.json"

        self.state_file = Path(state_file)
        self._log = logger.bind(state_file=str(self.state_file))

    def load(self) -> ExecutionHistory:
        """Load history from disk, or return empty history if none exists."""
        if not self.state_file.exists():
            self._log.info("No existing state file, starting fresh")
            return ExecutionHistory()

        try:
            with open(self.state_file, "r") as f:
                data = json.load(f)
            history = ExecutionHistory.from_dict(data)
        except (OSError, ValueError) as e:
            self._log.warning("Failed to load state, starting fresh", error=str(e))
            return ExecutionHistory()

        self._log.info(
            "Loaded execution history",
            last_successful_started_on=history.last_successful_started_on,
        )
        return history

    def save(self, history: ExecutionHistory) -> None:
        """
        Save history to disk.

        Writes to a temp file and renames it over the state file.
        """
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.state_file.with_suffix(".tmp")
        try:
            with open(temp_file, "w") as f:
                json.dump(history.to_dict(), f, indent=2)
            temp_file.replace(self.state_file)
        except OSError as e:
            self._log.error("Failed to save state", error=str(e))
            raise

        self._log.debug("Saved state", last_run_status=history.last_run_status)

    def clear(self) -> None:
        """Delete state file (for testing or reset)."""
        if self.state_file.exists():
            self.state_file.unlink()
            self._log.info("Cleared state file")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

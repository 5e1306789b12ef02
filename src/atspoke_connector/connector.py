"""
atSpoke Connector

Runs the integration end to end: validate config, run every step in
dependency order against one job state, and record the run so the next one
can fetch requests incrementally.
"""

from typing import Any

import httpx
import structlog

from atspoke_connector.client import AtSpokeClient
from atspoke_connector.config import IntegrationInstance, validate_invocation
from atspoke_connector.entity_builder import AtSpokeEntityBuilder
from atspoke_connector.job_state import InMemoryJobState, JobState
from atspoke_connector.scheduler import RunResult, StepScheduler
from atspoke_connector.state import ExecutionHistory, StateManager, utc_now
from atspoke_connector.steps import INTEGRATION_STEPS, IntegrationStep, StepExecutionContext

logger = structlog.get_logger(__name__)


class AtSpokeConnector:
    """
    atSpoke to asset-graph connector.

    Example:
        connector = AtSpokeConnector(load_config(), state_manager=StateManager())
        connector.validate()
        result = connector.run()

        for entity in connector.job_state.collected_entities:
            send_to_graph(entity.to_dict())
    """

    def __init__(
        self,
        instance: IntegrationInstance,
        steps: list[IntegrationStep] | None = None,
        job_state: JobState | None = None,
        state_manager: StateManager | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize connector.

        Args:
            instance: Integration instance and its config
            steps: Steps to run (defaults to all of them)
            job_state: Store for entities/relationships (defaults to in-memory)
            state_manager: Execution history persistence; None keeps no history
            transport: Optional httpx transport for the API client
        """
        self.instance = instance
        self.job_state = job_state if job_state is not None else InMemoryJobState()
        self.scheduler = StepScheduler(steps if steps is not None else INTEGRATION_STEPS)

        self._state_mgr = state_manager
        self._transport = transport
        self._client: AtSpokeClient | None = None
        self._last_result: RunResult | None = None

        self._log = logger.bind(instance_id=instance.id)

    @property
    def client(self) -> AtSpokeClient:
        if self._client is None:
            self._client = AtSpokeClient(
                api_key=self.instance.config.api_key_value(),
                transport=self._transport,
            )
        return self._client

    def validate(self) -> None:
        """
        Raise ConfigurationError or AtSpokeAuthenticationError if the
        instance can't run.
        """
        validate_invocation(self.instance, lambda: self.client)

    def close(self) -> None:
        if self._client:
            self._client.close()

    def load_history(self) -> ExecutionHistory:
        if self._state_mgr is None:
            return ExecutionHistory()
        return self._state_mgr.load()

    def run(self) -> RunResult:
        """Run all steps once. Entities written before a failure are kept."""
        history = self.load_history()
        started_on = utc_now()

        self._log.info(
            "Starting run",
            steps=self.scheduler.execution_order,
            last_successful_started_on=history.last_successful_started_on,
        )

        with self.client:
            context = StepExecutionContext(
                instance=self.instance,
                client=self.client,
                job_state=self.job_state,
                builder=AtSpokeEntityBuilder(self.instance),
                started_on=started_on,
                last_successful_started_on=history.last_successful_started_on,
            )
            result = self.scheduler.run(context)

        history.record_run(started_on, succeeded=result.succeeded)
        if self._state_mgr is not None:
            self._state_mgr.save(history)

        self._last_result = result
        self._log.info(
            "Run complete",
            succeeded=result.succeeded,
            failed_steps=result.failed_steps,
            skipped_steps=result.skipped_steps,
        )
        return result

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get connector statistics for monitoring."""
        stats: dict[str, Any] = {
            "instance_id": self.instance.id,
            "last_run": self._last_result.to_dict() if self._last_result else None,
        }
        if isinstance(self.job_state, InMemoryJobState):
            stats["job_state"] = self.job_state.get_stats()
        if self._client:
            stats["client"] = self._client.get_stats()
        return stats

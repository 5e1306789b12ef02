"""
Dependency-ordered step execution.

Steps form a DAG through `depends_on`. The scheduler validates the graph up
front, then runs steps one at a time in topological order (ties broken by
declaration order). A failed step is recorded and everything downstream of
it is skipped; unrelated steps still run.
"""

import time
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from typing import Any

import structlog

from atspoke_connector.steps import IntegrationStep, StepExecutionContext

logger = structlog.get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"
STATUS_SKIPPED = "skipped"


class StepGraphError(Exception):
    """Raised when step dependencies don't form a valid DAG."""
    pass


@dataclass
class StepResult:
    step_id: str
    status: str
    error: str | None = None
    elapsed_ms: int = 0


@dataclass
class RunResult:
    results: list[StepResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(r.status == STATUS_SUCCESS for r in self.results)

    @property
    def failed_steps(self) -> list[str]:
        return [r.step_id for r in self.results if r.status == STATUS_FAILURE]

    @property
    def skipped_steps(self) -> list[str]:
        return [r.step_id for r in self.results if r.status == STATUS_SKIPPED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "steps": [
                {
                    "id": r.step_id,
                    "status": r.status,
                    "error": r.error,
                    "elapsed_ms": r.elapsed_ms,
                }
                for r in self.results
            ],
        }


class StepScheduler:
    """
    Runs integration steps in dependency order.

    Example:
        scheduler = StepScheduler(INTEGRATION_STEPS)
        result = scheduler.run(context)
        if not result.succeeded:
            print(result.failed_steps)
    """

    def __init__(self, steps: list[IntegrationStep]):
        self._steps: dict[str, IntegrationStep] = {}
        for step in steps:
            if step.id in self._steps:
                raise StepGraphError(f"Duplicate step id: {step.id}")
            self._steps[step.id] = step

        for step in steps:
            for dependency in step.depends_on:
                if dependency not in self._steps:
                    raise StepGraphError(
                        f"Step {step.id} depends on unknown step {dependency}"
                    )

        self._order = self._resolve_order()

    def _resolve_order(self) -> list[str]:
        position = {step_id: i for i, step_id in enumerate(self._steps)}
        sorter = TopologicalSorter(
            {step_id: step.depends_on for step_id, step in self._steps.items()}
        )
        try:
            sorter.prepare()
        except CycleError as e:
            cycle = " -> ".join(e.args[1])
            raise StepGraphError(f"Step dependency cycle: {cycle}") from e

        order: list[str] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready(), key=position.__getitem__)
            order.extend(ready)
            sorter.done(*ready)
        return order

    @property
    def execution_order(self) -> list[str]:
        return list(self._order)

    def dependents_of(self, step_id: str) -> set[str]:
        """All steps that depend on `step_id`, directly or transitively."""
        found: set[str] = set()
        frontier = [step_id]
        while frontier:
            current = frontier.pop()
            for step in self._steps.values():
                if current in step.depends_on and step.id not in found:
                    found.add(step.id)
                    frontier.append(step.id)
        return found

    def run(self, context: StepExecutionContext) -> RunResult:
        result = RunResult()
        blocked: set[str] = set()

        for step_id in self._order:
            step = self._steps[step_id]
            log = logger.bind(step=step_id)

            if step_id in blocked:
                log.warning("Skipping step, an upstream step failed")
                result.results.append(StepResult(step_id, STATUS_SKIPPED))
                continue

            log.info("Starting step", name=step.name)
            start_time = time.monotonic()
            try:
                step.execution_handler(context)
            except Exception as e:
                elapsed_ms = round((time.monotonic() - start_time) * 1000)
                log.error("Step failed", error=str(e), error_type=type(e).__name__)
                result.results.append(
                    StepResult(step_id, STATUS_FAILURE, error=str(e), elapsed_ms=elapsed_ms)
                )
                blocked |= self.dependents_of(step_id)
                continue

            elapsed_ms = round((time.monotonic() - start_time) * 1000)
            log.info("Step complete", elapsed_ms=elapsed_ms)
            result.results.append(StepResult(step_id, STATUS_SUCCESS, elapsed_ms=elapsed_ms))

        return result

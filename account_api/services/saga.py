"""Run ordered steps and undo completed ones when a later step fails."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

Action = Callable[[Dict[str, Any]], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[None]]


@dataclass
class SagaStep:
    """One step of a saga.

    Attributes:
        name: Key under which the action's result is stored
        action: Receives the results of all earlier steps
        compensate: Receives this step's own result; None if the step
            leaves nothing to undo
    """

    name: str
    action: Action
    compensate: Optional[Compensation] = None


class Saga:
    """Sequential steps with per-step compensation.

    Steps run in the order they were added. On the first failing step the
    compensations of the steps that already completed run in reverse order
    and the original exception is re-raised. A compensation that fails is
    logged and skipped; it never replaces the original error.
    """

    def __init__(self, name: str):
        self.name = name
        self.steps: List[SagaStep] = []

    def step(
        self,
        name: str,
        action: Action,
        compensate: Optional[Compensation] = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensate))
        return self

    async def run(self) -> Dict[str, Any]:
        """Execute every step.

        Returns:
            Mapping of step name to the value its action returned
        """
        results: Dict[str, Any] = {}
        completed: List[SagaStep] = []

        for step in self.steps:
            try:
                results[step.name] = await step.action(results)
            except Exception as e:
                logger.warning(
                    "saga_step_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    compensating=[s.name for s in reversed(completed) if s.compensate],
                )
                await self._compensate(completed, results)
                raise
            completed.append(step)

        return results

    async def _compensate(self, completed: List[SagaStep], results: Dict[str, Any]) -> None:
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                await step.compensate(results[step.name])
                logger.info("saga_step_compensated", saga=self.name, step=step.name)
            except Exception as e:
                logger.error(
                    "saga_compensation_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )

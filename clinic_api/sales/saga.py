"""
A minimal saga runner.

Each step is an async action plus an optional async compensation that receives the
action's result. When a step raises, the compensations of the steps that already
succeeded run newest first and the original exception is re-raised.
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[Any]]


class SagaStep:
    def __init__(self, name: str, action: Action, compensation: Optional[Compensation] = None):
        self.name = name
        self.action = action
        self.compensation = compensation


class Saga:
    def __init__(self, name: str):
        self.name = name
        self.steps: List[SagaStep] = []
        self.completed: List[Tuple[SagaStep, Any]] = []

    def add_step(self, name: str, action: Action, compensation: Optional[Compensation] = None) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def run(self) -> List[Any]:
        """
        Run every step in order.

        Returns:
            The result of each step, in order

        Raises:
            Whatever the failing step raised, after compensation
        """
        for step in self.steps:
            try:
                result = await step.action()
            except Exception as exc:
                logger.warning("Saga %s failed at step %s: %s", self.name, step.name, exc)
                await self.compensate()
                raise
            self.completed.append((step, result))
        return [result for _, result in self.completed]

    async def compensate(self) -> None:
        """Undo completed steps newest first. A failing compensation does not stop the others."""
        while self.completed:
            step, result = self.completed.pop()
            if step.compensation is None:
                continue
            try:
                await step.compensation(result)
                logger.info("Saga %s compensated step %s", self.name, step.name)
            except Exception:
                logger.exception("Saga %s could not compensate step %s", self.name, step.name)

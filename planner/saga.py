# planner/saga.py

import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[Any]]


class SagaError(Exception):
    """
    Raised when a saga step fails, after every completed step has been compensated.

    Attributes:
        step: Name of the step that failed.
        cause: The exception raised by that step.
        compensation_errors: (step name, exception) pairs for compensations that failed.
    """
    def __init__(self, step: str, cause: BaseException, compensation_errors: Optional[List[Tuple[str, BaseException]]] = None):
        self.step = step
        self.cause = cause
        self.compensation_errors = compensation_errors or []
        super().__init__(f"Step '{step}' failed: {cause}")


class SagaStep:
    def __init__(self, name: str, action: Action, compensation: Optional[Compensation] = None):
        self.name = name
        self.action = action
        self.compensation = compensation

    def __repr__(self) -> str:
        return f"SagaStep(name='{self.name}')"


class Saga:
    """
    Runs an ordered list of async steps, undoing completed ones if a later step fails.

    Each compensation receives the result of its own action. Steps run strictly
    one after another; compensations run in reverse order of completion.
    """

    def __init__(self, name: str = "saga"):
        self.name = name
        self.steps: List[SagaStep] = []

    def add_step(self, name: str, action: Action, compensation: Optional[Compensation] = None) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    def __len__(self) -> int:
        return len(self.steps)

    async def execute(self) -> List[Any]:
        """
        Executes every step in order.

        Returns:
            The results of the actions, in step order.

        Raises:
            SagaError: If any action fails. Completed steps are compensated first.
        """
        completed: List[Tuple[SagaStep, Any]] = []
        for step in self.steps:
            try:
                result = await step.action()
            except Exception as e:
                logger.error(f"{self.name}: step '{step.name}' failed: {e}")
                compensation_errors = await self._compensate(completed)
                raise SagaError(step.name, e, compensation_errors) from e
            completed.append((step, result))
            logger.debug(f"{self.name}: step '{step.name}' done")
        return [result for _, result in completed]

    async def _compensate(self, completed: List[Tuple[SagaStep, Any]]) -> List[Tuple[str, BaseException]]:
        errors: List[Tuple[str, BaseException]] = []
        for step, result in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await step.compensation(result)
                logger.info(f"{self.name}: compensated step '{step.name}'")
            except Exception as e:
                # Keep undoing the remaining steps; the failure is reported in SagaError.
                logger.exception(f"{self.name}: compensation of '{step.name}' failed: {e}")
                errors.append((step.name, e))
        return errors

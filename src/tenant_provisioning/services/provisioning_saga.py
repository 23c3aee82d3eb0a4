"""
# Provisioning Saga

Runs a multi-step operation spanning independent stores (management database, remote
admin endpoint, tenant database) with a **step log** and **compensation**.

## Failure Semantics

| Situation | Outcome |
|-----------|---------|
| First step fails | Original exception propagates unchanged |
| Later step fails | Completed steps compensated in reverse order, then `PartialProvisioningError` |
| Compensation fails | Logged; `PartialProvisioningError.compensated` is False |

## Usage Example

```python
saga = ProvisioningSaga("create_tenant", resource_id=tenant_id)
saga.add_step("register_tenant", register, compensate=unregister)
saga.add_step("provision_database", provision, compensate=drop)
await saga.run()
```
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from tenant_provisioning.database.exceptions import PartialProvisioningError
from tenant_provisioning.managers.logging_manager import get_logger

logger = get_logger(prefix="[Saga]")

StepCallable = Callable[[], Awaitable[Any]]


class SagaStepStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"
    SKIPPED = "skipped"


class SagaStepRecord(BaseModel):
    """Log entry for one saga step."""
    name: str = Field(..., description="Step name")
    status: SagaStepStatus = Field(SagaStepStatus.PENDING, description="Step status")
    error: Optional[str] = Field(None, description="Error message if the step or its compensation failed")


class _SagaStep:
    def __init__(self, name: str, action: StepCallable, compensate: Optional[StepCallable]):
        self.name = name
        self.action = action
        self.compensate = compensate
        self.record = SagaStepRecord(name=name)


class ProvisioningSaga:
    """
    Ordered list of `(name, action, compensate)` steps.

    Attributes:
        operation (str): Operation name reported in errors and logs.
        resource_id (Optional[str]): Id of the resource being provisioned.
        compensate_on_failure (bool): Run compensations when a later step fails.
    """

    def __init__(self, operation: str, resource_id: Optional[str] = None, compensate_on_failure: bool = True):
        self.operation = operation
        self.resource_id = resource_id
        self.compensate_on_failure = compensate_on_failure
        self._steps: List[_SagaStep] = []

    def add_step(self, name: str, action: StepCallable, compensate: Optional[StepCallable] = None) -> "ProvisioningSaga":
        self._steps.append(_SagaStep(name, action, compensate))
        return self

    @property
    def step_log(self) -> List[SagaStepRecord]:
        return [step.record for step in self._steps]

    def step_log_dicts(self) -> List[Dict[str, Any]]:
        return [record.model_dump(mode="json") for record in self.step_log]

    async def run(self) -> List[Any]:
        """
        Execute all steps in order.

        Returns:
            List[Any]: Results of the step actions, in order.

        Raises:
            PartialProvisioningError: A step failed after at least one step completed.
            Exception: The original error when the first step fails.
        """
        results: List[Any] = []
        completed: List[_SagaStep] = []

        for index, step in enumerate(self._steps):
            try:
                results.append(await step.action())
            except Exception as e:
                step.record.status = SagaStepStatus.FAILED
                step.record.error = str(e)
                for remaining in self._steps[index + 1:]:
                    remaining.record.status = SagaStepStatus.SKIPPED
                logger.error(f"{self.operation}: step {step.name} failed: {e}")

                if not completed:
                    raise

                compensated = await self._compensate(completed) if self.compensate_on_failure else False
                raise PartialProvisioningError(
                    operation=self.operation,
                    failed_step=step.name,
                    completed_steps=[done.name for done in completed],
                    compensated=compensated,
                    step_log=self.step_log_dicts(),
                    resource_id=self.resource_id,
                ) from e

            step.record.status = SagaStepStatus.COMPLETED
            completed.append(step)
            logger.debug(f"{self.operation}: step {step.name} completed")

        logger.info(f"{self.operation} completed ({len(completed)} steps)")
        return results

    async def _compensate(self, completed: List[_SagaStep]) -> bool:
        all_compensated = True
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                await step.compensate()
            except Exception as e:
                all_compensated = False
                step.record.status = SagaStepStatus.COMPENSATION_FAILED
                step.record.error = str(e)
                logger.error(f"{self.operation}: compensation of {step.name} failed: {e}")
                continue
            step.record.status = SagaStepStatus.COMPENSATED
            logger.info(f"{self.operation}: compensated step {step.name}")
        return all_compensated

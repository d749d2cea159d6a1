"""Result models for database bootstrap/repair runs."""

from typing import Literal

from pydantic import BaseModel, computed_field


StepStatus = Literal["success", "failed", "skipped"]


class BootstrapStepResult(BaseModel):
    name: str
    status: StepStatus
    message: str = ""


class BootstrapReport(BaseModel):
    """Per-step log of a repair run. A failed step never stops the run."""

    steps: list[BootstrapStepResult] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ok(self) -> bool:
        return all(step.status != "failed" for step in self.steps)

    def count(self, status: StepStatus) -> int:
        return sum(1 for step in self.steps if step.status == status)

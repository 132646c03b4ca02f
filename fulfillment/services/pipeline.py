"""
Declarative step pipeline.

A pipeline is a list of Steps run in order. Each step is either required or
best-effort:

    steps = [
        Step("load_order", load),
        Step("send_email", send, required=False),
    ]
    result = run_steps(steps, log=log)

A required step that raises aborts the pipeline: FulfillmentError subclasses
propagate unchanged, anything else is wrapped in DownstreamServiceError. A
best-effort step that raises is wrapped in DownstreamServiceWarning, logged at
the step's severity, recorded as failed, and the pipeline moves on.

A step with a `when` predicate that returns False is not run and is recorded
as skipped.

Each action receives the shared context dict; its return value is stored in
the context under the step name, so later steps can use earlier results.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from fulfillment.core.errors import (
    DownstreamServiceError,
    DownstreamServiceWarning,
    FulfillmentError,
)


class Outcome(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[dict], Any]
    required: bool = True
    severity: str = "warning"
    when: Optional[Callable[[dict], bool]] = None


@dataclass
class StepResult:
    name: str
    required: bool
    outcome: Outcome
    error: Optional[str] = None


@dataclass
class PipelineResult:
    steps: list[StepResult] = field(default_factory=list)
    context: dict = field(default_factory=dict)

    @property
    def warnings(self) -> list[StepResult]:
        return [s for s in self.steps if s.outcome is Outcome.FAILED and not s.required]

    def outcome(self, name: str) -> Optional[Outcome]:
        for s in self.steps:
            if s.name == name:
                return s.outcome
        return None


def run_steps(steps: list[Step], context: Optional[dict] = None, log=None) -> PipelineResult:
    log = log or structlog.get_logger(__name__)
    result = PipelineResult(context=context if context is not None else {})

    for step in steps:
        if step.when is not None and not step.when(result.context):
            log.info("step_skipped", step=step.name)
            result.steps.append(StepResult(step.name, step.required, Outcome.SKIPPED))
            continue
        try:
            value = step.action(result.context)
        except Exception as exc:
            if step.required:
                log.error("step_failed", step=step.name, error=str(exc))
                if isinstance(exc, FulfillmentError):
                    raise
                raise DownstreamServiceError(f"{step.name} failed: {exc}") from exc
            warning = DownstreamServiceWarning(step.name, exc)
            getattr(log, step.severity)("step_failed_best_effort", step=step.name, error=str(exc))
            result.steps.append(StepResult(step.name, False, Outcome.FAILED, warning.message))
            continue
        result.context[step.name] = value
        result.steps.append(StepResult(step.name, step.required, Outcome.OK))

    return result

"""
Plan appender: chains plan-producing steps into one plan.

The ``..._if_empty`` variants only run while nothing has been planned yet,
which turns a sequence of calls into a priority chain. RecoveringPlanAppender
is the fault boundary: a failing operation contributes nothing and the chain
continues from the state before it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from kubarango.modules.api.models import Plan

logger = logging.getLogger("kubarango.plan")

T = TypeVar("T")

PlanStep = Callable[[Any], Plan]
StepCondition = Callable[[Any], bool]
SubPlanCombinator = Callable[[Any, Sequence[PlanStep]], Plan]


class PlanBuildError(Exception):
    """A step reports that it cannot produce a plan this pass."""


@dataclass(frozen=True)
class StepOutcome(Generic[T]):
    """Either a value or the reason no value was produced."""

    value: Optional[T] = None
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def run_step(fn: Callable[[], T]) -> StepOutcome[T]:
    """Run fn and turn any failure into a StepOutcome."""
    try:
        return StepOutcome(value=fn())
    except PlanBuildError as e:
        return StepOutcome(failure=str(e))
    except Exception as e:
        logger.exception("Recovering from unexpected fault in plan step")
        return StepOutcome(failure=f"{type(e).__name__}: {e}")


def first_non_empty(ctx: Any, steps: Sequence[PlanStep]) -> Plan:
    """Plan of the first step that produces one."""
    for step in steps:
        plan = step(ctx)
        if not plan.is_empty():
            return plan
    return Plan()


def concat_all(ctx: Any, steps: Sequence[PlanStep]) -> Plan:
    plan = Plan()
    for step in steps:
        plan = plan.concat(step(ctx))
    return plan


class PlanAppender:
    """Immutable: every operation returns a new appender."""

    def __init__(self, ctx: Any, current: Optional[Plan] = None):
        self.ctx = ctx
        self._current = current if current is not None else Plan()

    @property
    def plan(self) -> Plan:
        return self._current

    def _new(self, plan: Plan) -> "PlanAppender":
        return PlanAppender(self.ctx, self._current.concat(plan))

    def apply(self, step: PlanStep) -> "PlanAppender":
        return self._new(step(self.ctx))

    def apply_with_condition(self, condition: StepCondition, step: PlanStep) -> "PlanAppender":
        if not condition(self.ctx):
            return self
        return self.apply(step)

    def apply_sub_plan(self, combinator: SubPlanCombinator, *steps: PlanStep) -> "PlanAppender":
        return self._new(combinator(self.ctx, steps))

    def apply_if_empty(self, step: PlanStep) -> "PlanAppender":
        if self._current.is_empty():
            return self.apply(step)
        return self

    def apply_with_condition_if_empty(self, condition: StepCondition, step: PlanStep) -> "PlanAppender":
        if self._current.is_empty():
            return self.apply_with_condition(condition, step)
        return self

    def apply_sub_plan_if_empty(self, combinator: SubPlanCombinator, *steps: PlanStep) -> "PlanAppender":
        if self._current.is_empty():
            return self.apply_sub_plan(combinator, *steps)
        return self


class RecoveringPlanAppender:
    """Wraps a PlanAppender so that no step failure escapes the chain."""

    def __init__(self, appender: PlanAppender, deployment: str = ""):
        self.appender = appender
        self.deployment = deployment

    @property
    def plan(self) -> Plan:
        return self.appender.plan

    def _create(self, fn: Callable[[PlanAppender], PlanAppender]) -> "RecoveringPlanAppender":
        outcome = run_step(lambda: fn(self.appender))
        if not outcome.ok:
            logger.warning(f"Plan step for {self.deployment or 'deployment'} failed: {outcome.failure}")
            return self
        return RecoveringPlanAppender(outcome.value, self.deployment)

    def apply(self, step: PlanStep) -> "RecoveringPlanAppender":
        return self._create(lambda a: a.apply(step))

    def apply_with_condition(self, condition: StepCondition, step: PlanStep) -> "RecoveringPlanAppender":
        return self._create(lambda a: a.apply_with_condition(condition, step))

    def apply_sub_plan(self, combinator: SubPlanCombinator, *steps: PlanStep) -> "RecoveringPlanAppender":
        return self._create(lambda a: a.apply_sub_plan(combinator, *steps))

    def apply_if_empty(self, step: PlanStep) -> "RecoveringPlanAppender":
        return self._create(lambda a: a.apply_if_empty(step))

    def apply_with_condition_if_empty(
        self, condition: StepCondition, step: PlanStep
    ) -> "RecoveringPlanAppender":
        return self._create(lambda a: a.apply_with_condition_if_empty(condition, step))

    def apply_sub_plan_if_empty(
        self, combinator: SubPlanCombinator, *steps: PlanStep
    ) -> "RecoveringPlanAppender":
        return self._create(lambda a: a.apply_sub_plan_if_empty(combinator, *steps))


def new_plan_appender(ctx: Any, current: Optional[Plan] = None, deployment: str = "") -> RecoveringPlanAppender:
    return RecoveringPlanAppender(PlanAppender(ctx, current), deployment)

import logging
from datetime import UTC, datetime
from typing import Optional, Tuple

from kubarango.config.timeouts import GlobalTimeouts
from kubarango.modules.api.models import Action, ConditionType, DeploymentStatus, Plan
from kubarango.modules.events import EVENT_WARNING

from .action import ActionImpl
from .context import ActionContext
from .registry import create_action

logger = logging.getLogger("kubarango.reconcile.executor")


def _is_first(status: DeploymentStatus, action: Action) -> bool:
    first = status.plan.first()
    return first is not None and first.id == action.id


class PlanExecutor:
    """
    Runs the plan of one deployment, one action at a time.

    Pending actions are started; started actions are polled until ready,
    aborted or past their timeout. Completed actions are removed and the
    next one starts in the same call. A start that raises is retried on
    later calls until the budget, counted from the first attempt, runs out.
    Every plan change is a CAS write that only applies while the action is
    still first in the stored plan.
    """

    def __init__(self, clock=None, timeouts: Optional[GlobalTimeouts] = None):
        self._clock = clock or (lambda: datetime.now(UTC))
        self.timeouts = timeouts or GlobalTimeouts()

    async def execute_plan(self, ctx: ActionContext) -> bool:
        """
        Advance the plan as far as possible.

        Returns:
            True if the plan or status changed
        """
        changed = False
        while True:
            action = ctx.get_status().plan.first()
            if action is None:
                return changed

            try:
                impl = create_action(action, ctx, self.timeouts)
            except KeyError:
                logger.error(f"No implementation for action {action.type}, dropping it")
                await self._remove_first(ctx, action)
                changed = True
                continue

            if (
                impl.requires_member
                and action.member_id
                and ctx.get_member_status_by_id(action.member_id) is None
            ):
                logger.info(
                    f"{action.type.value} targets missing member {action.member_id}, skipping"
                )
                await self._remove_first(ctx, action)
                changed = True
                continue

            if action.started_at is None:
                outcome, error = await self._start(ctx, impl)
                if error is not None:
                    if self._timed_out(action, impl.timeout()):
                        await self._fail(ctx, action, impl, error)
                    else:
                        await self._mark_attempted(ctx, action)
                    return True
                if outcome:
                    await self._remove_first(ctx, action)
                    changed = True
                    continue
                await self._mark_started(ctx, action)
                return True

            ready, abort, error = await self._check(impl)
            if abort:
                logger.warning(
                    f"{action.type.value} on {action.member_id or ctx.deployment} aborted, replanning"
                )
                await self._clear_plan(ctx, action)
                return True
            if ready:
                logger.info(f"{action.type.value} on {action.member_id or ctx.deployment} completed")
                await self._remove_first(ctx, action)
                changed = True
                continue

            if self._timed_out(action, impl.timeout()):
                await self._fail(ctx, action, impl, error)
                return True
            return changed

    async def _start(
        self, ctx: ActionContext, impl: ActionImpl
    ) -> Tuple[bool, Optional[Exception]]:
        """Start an action; returns (done, error) where a raised start is retried next tick."""
        action = impl.action
        logger.info(
            f"Starting {action.type.value} on {action.member_id or ctx.deployment}: {action.reason}"
        )
        try:
            return await impl.start(), None
        except Exception as e:
            logger.warning(f"Failed to start {action.type.value}: {e}")
            return False, e

    async def _check(self, impl: ActionImpl):
        try:
            ready, abort = await impl.check_progress()
            return ready, abort, None
        except Exception as e:
            logger.warning(f"Failed to check progress of {impl.action.type.value}: {e}")
            return False, False, e

    def _timed_out(self, action: Action, timeout: float) -> bool:
        # Measured from the first start attempt, failed or not
        since = action.start_attempted_at or action.started_at
        if since is None or timeout <= 0:
            return False
        return (self._clock() - since).total_seconds() > timeout

    async def _remove_first(self, ctx: ActionContext, action: Action) -> None:
        def update(status: DeploymentStatus) -> bool:
            if not _is_first(status, action):
                return False
            status.plan = status.plan.without_first()
            return True

        await ctx.with_status_update(update)

    async def _mark_started(self, ctx: ActionContext, action: Action) -> None:
        now = self._clock()

        def update(status: DeploymentStatus) -> bool:
            if not _is_first(status, action) or status.plan.first().started_at is not None:
                return False
            started = status.plan.first().model_copy(update={"started_at": now})
            status.plan = Plan([started]).concat(status.plan.without_first())
            return True

        await ctx.with_status_update(update)

    async def _mark_attempted(self, ctx: ActionContext, action: Action) -> None:
        now = self._clock()

        def update(status: DeploymentStatus) -> bool:
            if not _is_first(status, action) or status.plan.first().start_attempted_at is not None:
                return False
            attempted = status.plan.first().model_copy(update={"start_attempted_at": now})
            status.plan = Plan([attempted]).concat(status.plan.without_first())
            return True

        await ctx.with_status_update(update)

    async def _clear_plan(self, ctx: ActionContext, action: Action) -> None:
        def update(status: DeploymentStatus) -> bool:
            if not _is_first(status, action):
                return False
            status.plan = Plan()
            return True

        await ctx.with_status_update(update)

    async def _fail(
        self, ctx: ActionContext, action: Action, impl: ActionImpl, error: Optional[Exception]
    ) -> None:
        message = f"{action.type.value} did not finish within {int(impl.timeout())}s"
        if error is not None:
            message = f"{message}: {error}"
        logger.error(f"{message} ({action.member_id or ctx.deployment})")

        def update(status: DeploymentStatus) -> bool:
            if not _is_first(status, action):
                return False
            status.plan = status.plan.without_first()
            found = status.members.element_by_id(action.member_id) if action.member_id else None
            if found is not None:
                found[0].conditions.update(
                    ConditionType.ACTION_FAILED, True, action.type.value, message
                )
            return True

        await ctx.with_status_update(update)
        await ctx.record_event("ActionFailed", message, EVENT_WARNING)

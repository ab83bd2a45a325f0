import logging

from kubarango.modules.api.models import Plan

from .appender import first_non_empty, new_plan_appender
from .steps import (
    PlanBuilderContext,
    create_encryption_key_status_plan,
    create_member_template_plan,
    create_rotation_plan,
    create_scale_plan,
    encryption_rotation_enabled,
)

logger = logging.getLogger("kubarango.plan")


class PlanBuilder:
    """Computes the next plan of a deployment from its spec, status and snapshot."""

    def create_plan(self, ctx: PlanBuilderContext) -> Plan:
        """
        Build a plan for one pass.

        A non-empty stored plan is returned untouched so that a restarted
        operator resumes it. Otherwise steps run in priority order and the
        first one that yields actions wins.
        """
        current = ctx.status.plan
        if not current.is_empty():
            return current

        plan = (
            new_plan_appender(ctx, deployment=ctx.deployment)
            .apply_if_empty(create_rotation_plan)
            .apply_if_empty(create_scale_plan)
            .apply_with_condition_if_empty(
                encryption_rotation_enabled, create_encryption_key_status_plan
            )
            .apply_sub_plan_if_empty(first_non_empty, create_member_template_plan)
            .plan
        )

        if not plan.is_empty():
            logger.info(
                f"Created plan for {ctx.deployment}: "
                + ", ".join(action.type.value for action in plan)
            )
        return plan

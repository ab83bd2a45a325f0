"""
Plan Module - Black Box Interface

Purpose: Turn the diff between declared and observed state into a plan
Interface: PlanBuilder.create_plan(), PlanBuilderContext, PlanAppender,
           RecoveringPlanAppender, first_non_empty(), concat_all()
Hidden: Step priority, member selection, fault recovery

A failing step never aborts a pass; it simply contributes nothing.
"""

from .appender import (
    PlanAppender,
    PlanBuildError,
    RecoveringPlanAppender,
    StepOutcome,
    concat_all,
    first_non_empty,
    new_plan_appender,
    run_step,
)
from .builder import PlanBuilder
from .steps import (
    PARAM_CHECKSUM,
    PARAM_SILENT,
    PlanBuilderContext,
    create_encryption_key_status_plan,
    create_member_template_plan,
    create_rotation_plan,
    create_scale_plan,
    encryption_key_hashes,
    rotation_plan_for_member,
)

__all__ = [
    "PARAM_CHECKSUM",
    "PARAM_SILENT",
    "PlanAppender",
    "PlanBuildError",
    "PlanBuilder",
    "PlanBuilderContext",
    "RecoveringPlanAppender",
    "StepOutcome",
    "concat_all",
    "create_encryption_key_status_plan",
    "create_member_template_plan",
    "create_rotation_plan",
    "create_scale_plan",
    "encryption_key_hashes",
    "first_non_empty",
    "new_plan_appender",
    "rotation_plan_for_member",
    "run_step",
]

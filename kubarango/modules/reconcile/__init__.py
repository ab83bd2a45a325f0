"""
Reconcile Module - Black Box Interface

Purpose: Execute a deployment's plan as a resumable state machine
Interface: PlanExecutor.execute_plan(), ActionContext, ActionImpl,
           ACTION_FACTORIES, create_action()
Hidden: Action implementations, timeouts, plan bookkeeping

Every side effect of an action is repeatable; progress survives restarts
through the plan stored with the status.
"""

from .action import ActionImpl, EmptyCheckProgress
from .context import ActionContext
from .executor import PlanExecutor
from .registry import ACTION_FACTORIES, ActionFactory, create_action

__all__ = [
    "ACTION_FACTORIES",
    "ActionContext",
    "ActionFactory",
    "ActionImpl",
    "EmptyCheckProgress",
    "PlanExecutor",
    "create_action",
]

import logging
from typing import Optional, Tuple

from kubarango.modules.api.models import Action

from .context import ActionContext

logger = logging.getLogger("kubarango.reconcile")


class ActionImpl:
    """
    Base of all plan actions.

    start() performs the side effect and returns True when no polling is
    needed. check_progress() is polled afterwards and returns
    (ready, abort). Both must be safe to call again after a restart.
    """

    # Actions for a member that no longer exists complete as no-ops
    requires_member = True

    def __init__(self, action: Action, ctx: ActionContext, timeout: float):
        self.action = action
        self.ctx = ctx
        self._timeout = timeout
        self.log = logging.getLogger(f"kubarango.reconcile.{action.type.value}")

    def timeout(self) -> float:
        return self._timeout

    def member_id(self) -> str:
        return self.action.member_id

    def param(self, key: str) -> Optional[str]:
        return self.action.get_param(key)

    async def start(self) -> bool:
        raise NotImplementedError

    async def check_progress(self) -> Tuple[bool, bool]:
        raise NotImplementedError


class EmptyCheckProgress:
    """For actions that always finish in start()."""

    async def check_progress(self) -> Tuple[bool, bool]:
        return True, False

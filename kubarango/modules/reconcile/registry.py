from types import MappingProxyType
from typing import Callable, Mapping, NamedTuple, Optional

from kubarango.config.timeouts import GlobalTimeouts
from kubarango.modules.api.models import Action, ActionType

from .action import ActionImpl
from .actions import (
    AddMemberAction,
    DisableClusterScalingAction,
    EnableClusterScalingAction,
    EncryptionKeyStatusUpdateAction,
    KillMemberPodAction,
    RemoveMemberAction,
    RotateMemberAction,
    UpdatePodInPlaceAction,
    UpdatePodStatusAction,
    WaitForMemberUpAction,
)
from .context import ActionContext


class ActionFactory(NamedTuple):
    constructor: Callable[..., ActionImpl]
    # Short actions only touch the status or the cluster's scaling switch
    short: bool = False

    def timeout(self, timeouts: GlobalTimeouts) -> float:
        return timeouts.short_action if self.short else timeouts.default_action

    def create(self, action: Action, ctx: ActionContext, timeouts: GlobalTimeouts) -> ActionImpl:
        return self.constructor(action, ctx, self.timeout(timeouts))


ACTION_FACTORIES: Mapping[ActionType, ActionFactory] = MappingProxyType({
    ActionType.ADD_MEMBER: ActionFactory(AddMemberAction, short=True),
    ActionType.REMOVE_MEMBER: ActionFactory(RemoveMemberAction),
    ActionType.KILL_MEMBER_POD: ActionFactory(KillMemberPodAction),
    ActionType.ROTATE_MEMBER: ActionFactory(RotateMemberAction),
    ActionType.WAIT_FOR_MEMBER_UP: ActionFactory(WaitForMemberUpAction),
    ActionType.UPDATE_POD_STATUS: ActionFactory(UpdatePodStatusAction),
    ActionType.UPDATE_POD_IN_PLACE: ActionFactory(UpdatePodInPlaceAction),
    ActionType.ENCRYPTION_KEY_STATUS_UPDATE: ActionFactory(EncryptionKeyStatusUpdateAction, short=True),
    ActionType.DISABLE_CLUSTER_SCALING: ActionFactory(DisableClusterScalingAction, short=True),
    ActionType.ENABLE_CLUSTER_SCALING: ActionFactory(EnableClusterScalingAction, short=True),
})


def create_action(
    action: Action, ctx: ActionContext, timeouts: Optional[GlobalTimeouts] = None
) -> ActionImpl:
    """
    Build the implementation of action with its budget from the timeout policy.

    Raises:
        KeyError: If the action type has no implementation
    """
    return ACTION_FACTORIES[action.type].create(action, ctx, timeouts or GlobalTimeouts())

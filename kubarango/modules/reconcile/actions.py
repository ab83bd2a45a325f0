"""Implementations of every plan action type."""

from typing import Tuple

from kubarango.modules.api.models import (
    ConditionType,
    DeploymentStatus,
    MemberPhase,
    MemberStatus,
    ServerGroup,
    new_id,
)
from kubarango.modules.events import EVENT_NORMAL
from kubarango.modules.k8s.constants import (
    ANNOTATION_POD_CHECKSUM,
    FINALIZER_DELAY_POD_TERMINATION,
    FINALIZER_POD_GRACEFUL_SHUTDOWN,
)
from kubarango.modules.k8s.names import create_pod_name
from kubarango.modules.plan.steps import PARAM_CHECKSUM, PARAM_SILENT
from kubarango.modules.pod import encryption_secret_name

from .action import ActionImpl, EmptyCheckProgress

# Groups whose members keep data on a persistent volume claim
_GROUPS_WITH_STORAGE = (ServerGroup.SINGLE, ServerGroup.AGENTS, ServerGroup.DBSERVERS)


class AddMemberAction(EmptyCheckProgress, ActionImpl):
    requires_member = False

    async def start(self) -> bool:
        member_id = self.action.member_id
        group = self.action.group
        if self.ctx.get_member_status_by_id(member_id) is not None:
            return True

        features = self.ctx.features
        role = group.as_role_abbreviated() if features.short_pod_names else group.as_role()
        suffix = new_id(5) if features.random_pod_names else ""
        member = MemberStatus(
            id=member_id,
            phase=MemberPhase.PENDING,
            pod_name=create_pod_name(self.ctx.deployment, role, member_id, suffix),
            persistent_volume_claim_name=(
                create_pod_name(self.ctx.deployment, role, member_id)
                if group in _GROUPS_WITH_STORAGE
                else ""
            ),
        )

        def add(status: DeploymentStatus) -> bool:
            if status.members.element_by_id(member_id) is not None:
                return False
            status.members.add(member, group)
            return True

        if await self.ctx.with_status_update(add):
            self.log.info(f"Added member {member_id} to {group.value}")
            await self.ctx.record_event("MemberAdded", f"Added member {member_id} to {group.value}")
        return True


class RemoveMemberAction(ActionImpl):
    async def start(self) -> bool:
        member, _ = self.ctx.get_member_status_by_id(self.action.member_id)
        if member.pod_name:
            await self.ctx.delete_pod(member.pod_name)
        return False

    async def check_progress(self) -> Tuple[bool, bool]:
        found = self.ctx.get_member_status_by_id(self.action.member_id)
        if found is None:
            return True, False
        member, group = found

        snapshot = await self.ctx.refresh_cached_status()
        pod = snapshot.pod(member.pod_name)
        if pod is not None:
            if not pod.is_deleted:
                await self.ctx.delete_pod(member.pod_name)
            return False, False

        await self.ctx.with_status_update(
            lambda status: status.members.remove_by_id(member.id)
        )
        self.log.info(f"Removed member {member.id} from {group.value}")
        await self.ctx.record_event("MemberRemoved", f"Removed member {member.id} from {group.value}")
        return True, False


def _graceful_shutdown_enabled(action: ActionImpl) -> bool:
    return action.ctx.features.graceful_shutdown and action.ctx.get_spec().features.graceful_shutdown


class KillMemberPodAction(ActionImpl):
    """Delete the pod and wait while the member drains behind its delay finalizer."""

    async def start(self) -> bool:
        if not _graceful_shutdown_enabled(self):
            return True

        member, _ = self.ctx.get_member_status_by_id(self.action.member_id)
        try:
            await self.ctx.delete_pod(member.pod_name)
        except Exception as e:
            self.log.error(f"Unable to kill pod {member.pod_name}: {e}")
            return True
        return False

    async def check_progress(self) -> Tuple[bool, bool]:
        if not _graceful_shutdown_enabled(self):
            return True, False

        found = self.ctx.get_member_status_by_id(self.action.member_id)
        if found is None:
            self.log.error("No such member")
            return True, False

        snapshot = await self.ctx.refresh_cached_status()
        pod = snapshot.pod(found[0].pod_name)
        if pod is None:
            return True, False
        if not pod.has_finalizer(FINALIZER_POD_GRACEFUL_SHUTDOWN):
            return True, False
        if pod.has_finalizer(FINALIZER_DELAY_POD_TERMINATION):
            return False, False
        return True, False


class RotateMemberAction(ActionImpl):
    """Recreate the member's pod; the next pod is created by the deployment loop."""

    async def start(self) -> bool:
        member, _ = self.ctx.get_member_status_by_id(self.action.member_id)
        pod = self.ctx.get_cached_status().pod(member.pod_name)
        if pod is None:
            await self._mark_pending(member.id)
            return True
        if not pod.is_deleted:
            await self.ctx.delete_pod(member.pod_name)
        return False

    async def check_progress(self) -> Tuple[bool, bool]:
        found = self.ctx.get_member_status_by_id(self.action.member_id)
        if found is None:
            return True, False
        member, _ = found

        snapshot = await self.ctx.refresh_cached_status()
        pod = snapshot.pod(member.pod_name)
        if pod is not None:
            if not pod.is_deleted:
                await self.ctx.delete_pod(member.pod_name)
            return False, False

        await self._mark_pending(member.id)
        return True, False

    async def _mark_pending(self, member_id: str) -> None:
        def update(member: MemberStatus) -> bool:
            changed = member.conditions.remove(ConditionType.PENDING_RESTART)
            changed = member.conditions.remove(ConditionType.PENDING_TLS_ROTATION) or changed
            if member.phase != MemberPhase.PENDING or member.pod_uid:
                member.phase = MemberPhase.PENDING
                member.pod_uid = ""
                member.pod_spec_version = ""
                changed = True
            return changed

        await self.ctx.update_member(member_id, update)


class WaitForMemberUpAction(ActionImpl):
    async def start(self) -> bool:
        return False

    async def check_progress(self) -> Tuple[bool, bool]:
        found = self.ctx.get_member_status_by_id(self.action.member_id)
        if found is None:
            return True, False
        member, _ = found
        if member.phase != MemberPhase.CREATED:
            return False, False

        pod = self.ctx.get_cached_status().pod(member.pod_name)
        if pod is None or pod.uid != member.pod_uid:
            pod = (await self.ctx.refresh_cached_status()).pod(member.pod_name)
        return pod is not None and pod.ready and not pod.is_deleted, False


class UpdatePodStatusAction(ActionImpl):
    """
    Record the desired template as applied.

    A checksum param that no longer matches the desired template means the
    action is stale and finishes without writing. Unless silent, the pod
    must already carry the checksum.
    """

    async def start(self) -> bool:
        return await self._commit()

    async def check_progress(self) -> Tuple[bool, bool]:
        await self.ctx.refresh_cached_status()
        return await self._commit(), False

    async def _commit(self) -> bool:
        found = self.ctx.get_member_status_by_id(self.action.member_id)
        if found is None:
            return True
        member, _ = found

        desired = member.desired_template
        if desired is None:
            return True
        checksum = self.param(PARAM_CHECKSUM)
        if checksum is not None and checksum != desired.checksum:
            self.log.debug(f"Checksum of {member.id} changed since planning, skipping")
            return True

        silent = self.param(PARAM_SILENT) == "true"
        pod = self.ctx.get_cached_status().pod(member.pod_name)
        if pod is None:
            return False
        if not silent and pod.checksum != desired.checksum:
            return False

        def update(m: MemberStatus) -> bool:
            if m.desired_template is None or m.desired_template.checksum != desired.checksum:
                return False
            changed = False
            if not desired.equals(m.applied_template):
                m.applied_template = desired.model_copy(deep=True)
                changed = True
            if not silent and m.pod_spec_version != desired.checksum:
                m.pod_spec_version = desired.checksum
                changed = True
            return changed

        await self.ctx.update_member(member.id, update)
        return True


class UpdatePodInPlaceAction(ActionImpl):
    """Patch the live pod's tolerations and checksum without recreating it."""

    async def start(self) -> bool:
        member, _ = self.ctx.get_member_status_by_id(self.action.member_id)
        desired = member.desired_template
        checksum = self.param(PARAM_CHECKSUM)
        if desired is None or (checksum is not None and checksum != desired.checksum):
            return True

        pod = self.ctx.get_cached_status().pod(member.pod_name)
        if pod is None:
            return True
        await self.ctx.patch_pod(
            member.pod_name,
            annotations={ANNOTATION_POD_CHECKSUM: desired.checksum},
            tolerations=desired.pod_spec.tolerations,
        )
        return False

    async def check_progress(self) -> Tuple[bool, bool]:
        found = self.ctx.get_member_status_by_id(self.action.member_id)
        if found is None:
            return True, False
        member, _ = found
        if member.desired_template is None:
            return True, False

        pod = (await self.ctx.refresh_cached_status()).pod(member.pod_name)
        if pod is None:
            # Pod vanished; the rotation check replans on the next pass
            return False, True
        return pod.checksum == member.desired_template.checksum, False


class EncryptionKeyStatusUpdateAction(EmptyCheckProgress, ActionImpl):
    requires_member = False

    async def start(self) -> bool:
        secret = self.ctx.get_cached_status().secret(encryption_secret_name(self.ctx.deployment))
        if secret is None:
            self.log.error("Unable to get encryption folder info")
            return True

        key_hashes = sorted(f"sha256:{key}" for key in secret.data.keys())

        def update(status: DeploymentStatus) -> bool:
            if not key_hashes:
                if status.hashes.encryption_keys is not None:
                    status.hashes.encryption_keys = None
                    return True
                return False
            if status.hashes.encryption_keys != key_hashes:
                status.hashes.encryption_keys = key_hashes
                return True
            return False

        if await self.ctx.with_status_update(update):
            await self.ctx.record_event("EncryptionKeysUpdated", f"{len(key_hashes)} encryption keys tracked", EVENT_NORMAL)
        return True


class DisableClusterScalingAction(EmptyCheckProgress, ActionImpl):
    requires_member = False

    async def start(self) -> bool:
        await self.ctx.disable_scaling_cluster()
        return True


class EnableClusterScalingAction(EmptyCheckProgress, ActionImpl):
    requires_member = False

    async def start(self) -> bool:
        await self.ctx.enable_scaling_cluster()
        return True

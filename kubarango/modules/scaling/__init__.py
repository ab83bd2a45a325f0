"""
Scaling Module - Black Box Interface

Purpose: Keep the cluster's reported server counts and the spec in agreement
Interface: ClusterScalingIntegration.send_update_to_cluster(),
           enable_scaling_cluster(), disable_scaling_cluster(),
           check_scaling_cluster(), listen_for_cluster_events()
Hidden: Pending update slot, last known counts, bootstrap grace window

Runs as its own task per deployment and never terminates on an error.
"""

from .integration import ClusterScalingIntegration, ScalingState

__all__ = ["ClusterScalingIntegration", "ScalingState"]

"""
Deployment Module - Black Box Interface

Purpose: Run the control loop of every deployment in the Status Store
Interface: Operator.start(), Operator.stop(), Operator.sync(),
           Deployment.reconcile_once(), Deployment.run()
Hidden: Pod inspection, pod creation, loop interval backoff, task supervision

One task per deployment; each also owns its cluster scaling task.
"""

from .deployment import BACKOFF_FACTOR, Deployment, members_in_flight
from .interval import Interval
from .operator import DEFAULT_SYNC_PERIOD, Operator

__all__ = [
    "BACKOFF_FACTOR",
    "DEFAULT_SYNC_PERIOD",
    "Deployment",
    "Interval",
    "Operator",
    "members_in_flight",
]

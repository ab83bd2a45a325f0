"""
Rotation Module - Black Box Interface

Purpose: Classify how disruptively a member's pod must change
Interface: is_rotation_required(), RotationMode, RotationDecision, compare()
Hidden: Rule order, per-field comparators

Pure functions over status, spec and a cluster snapshot; nothing here writes.
"""

from .check import RotationDecision, check_possible, is_rotation_required
from .compare import COMPARATORS, compare
from .mode import RotationMode

__all__ = [
    "COMPARATORS",
    "RotationDecision",
    "RotationMode",
    "check_possible",
    "compare",
    "is_rotation_required",
]

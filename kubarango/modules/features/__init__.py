"""
Features Module - Black Box Interface

Purpose: Operator-wide feature switches
Interface: FeatureGates, FEATURES, GRACEFUL_SHUTDOWN, ENCRYPTION_ROTATION,
           SHORT_POD_NAMES, RANDOM_POD_NAMES
Hidden: Defaults, name validation

The table of features is fixed at import; the enabled set is fixed at startup.
"""

from .gates import (
    ENCRYPTION_ROTATION,
    FEATURES,
    GRACEFUL_SHUTDOWN,
    RANDOM_POD_NAMES,
    SHORT_POD_NAMES,
    Feature,
    FeatureGates,
)

__all__ = [
    "ENCRYPTION_ROTATION",
    "FEATURES",
    "GRACEFUL_SHUTDOWN",
    "RANDOM_POD_NAMES",
    "SHORT_POD_NAMES",
    "Feature",
    "FeatureGates",
]

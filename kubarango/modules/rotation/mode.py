from enum import IntEnum


class RotationMode(IntEnum):
    """How disruptively a change must be applied, least to most."""

    SKIPPED = 0
    SILENT = 1
    IN_PLACE = 2
    GRACEFUL = 3
    ENFORCED = 4

    def combine(self, other: "RotationMode") -> "RotationMode":
        """The more disruptive of the two modes."""
        return self if self >= other else RotationMode(other)

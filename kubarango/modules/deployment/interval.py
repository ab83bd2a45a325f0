from dataclasses import dataclass


@dataclass(frozen=True)
class Interval:
    """Wait time between two passes of a control loop, in seconds."""

    seconds: float

    def reduce_to(self, maximum: float) -> "Interval":
        """Shrink to at most ``maximum``."""
        return Interval(min(self.seconds, maximum))

    def increase_to(self, minimum: float) -> "Interval":
        """Grow to at least ``minimum``."""
        return Interval(max(self.seconds, minimum))

    def backoff(self, factor: float, maximum: float) -> "Interval":
        """Multiply by ``factor``, capped at ``maximum``."""
        return Interval(min(self.seconds * factor, maximum))

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional

from kubarango.config.provider import FeatureConfig

logger = logging.getLogger("kubarango.features")


@dataclass(frozen=True)
class Feature:
    name: str
    description: str
    version: str = ""
    enabled_by_default: bool = False


GRACEFUL_SHUTDOWN = Feature(
    name="graceful-shutdown",
    description="Hold deleted pods with a finalizer until the member shut down cleanly",
    version="3.5.0",
    enabled_by_default=True,
)
ENCRYPTION_ROTATION = Feature(
    name="encryption-rotation",
    description="Track encryption key rotation in the deployment status",
    version="3.5.0",
)
SHORT_POD_NAMES = Feature(
    name="short-pod-names",
    description="Enable Short Pod Names",
    version="3.5.0",
)
RANDOM_POD_NAMES = Feature(
    name="random-pod-names",
    description="Enables generating random pod names",
)

FEATURES: Mapping[str, Feature] = MappingProxyType({
    f.name: f
    for f in (GRACEFUL_SHUTDOWN, ENCRYPTION_ROTATION, SHORT_POD_NAMES, RANDOM_POD_NAMES)
})


class FeatureGates:
    """Feature switches, fixed at startup."""

    def __init__(self, enabled: Iterable[str] = (), disabled: Iterable[str] = ()):
        """
        Args:
            enabled: Names of features to switch on
            disabled: Names of features to switch off, including defaults

        Raises:
            ValueError: On an unknown feature name
        """
        enabled = set(enabled)
        disabled = set(disabled)
        unknown = (enabled | disabled) - set(FEATURES)
        if unknown:
            raise ValueError(f"Unknown features: {', '.join(sorted(unknown))}")

        defaults = {f.name for f in FEATURES.values() if f.enabled_by_default}
        self._enabled: FrozenSet[str] = frozenset((defaults | enabled) - disabled)

    @classmethod
    def from_config(cls, config: Optional[FeatureConfig]) -> "FeatureGates":
        if config is None:
            return cls()
        gates = cls(config.enabled, config.disabled)
        logger.info(f"Enabled features: {', '.join(sorted(gates.enabled_names)) or 'none'}")
        return gates

    @property
    def enabled_names(self) -> FrozenSet[str]:
        return self._enabled

    def is_enabled(self, feature: Feature) -> bool:
        return feature.name in self._enabled

    @property
    def graceful_shutdown(self) -> bool:
        return self.is_enabled(GRACEFUL_SHUTDOWN)

    @property
    def encryption_rotation(self) -> bool:
        return self.is_enabled(ENCRYPTION_ROTATION)

    @property
    def short_pod_names(self) -> bool:
        return self.is_enabled(SHORT_POD_NAMES)

    @property
    def random_pod_names(self) -> bool:
        return self.is_enabled(RANDOM_POD_NAMES)

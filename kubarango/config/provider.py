"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Protocol


@dataclass
class TimeoutConfig:
    """Deadlines for outbound calls and budgets of plan actions, in seconds."""
    kubernetes: float
    arangod: float
    store: float
    default_action: float
    short_action: float = 30.0


@dataclass
class ScalingConfig:
    """Cluster scaling integration configuration."""
    enabled: bool
    period: float
    bootstrap_grace: float


@dataclass
class ArangodConfig:
    """How to reach the database's administrative endpoint."""
    scheme: str
    port: int
    verify_tls: bool
    jwt_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def has_basic_auth(self) -> bool:
        """Check if basic credentials are configured."""
        return bool(self.username)


@dataclass
class FeatureConfig:
    """Feature gates switched on at startup."""
    enabled: FrozenSet[str] = field(default_factory=frozenset)
    disabled: FrozenSet[str] = field(default_factory=frozenset)


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool
    cors_origins: List[str]


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_timeout_config(self) -> TimeoutConfig:
        """Get timeout configuration."""
        ...

    def get_scaling_config(self) -> ScalingConfig:
        """Get cluster scaling configuration."""
        ...

    def get_arangod_config(self) -> ArangodConfig:
        """Get database endpoint configuration."""
        ...

    def get_feature_config(self) -> FeatureConfig:
        """Get feature gate configuration."""
        ...

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...


def _split_set(value: str) -> FrozenSet[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_timeout_config(self) -> TimeoutConfig:
        """Get timeout configuration from environment variables."""
        return TimeoutConfig(
            kubernetes=float(os.getenv("TIMEOUT_KUBERNETES", "15")),
            arangod=float(os.getenv("TIMEOUT_ARANGOD", "10")),
            store=float(os.getenv("TIMEOUT_STORE", "5")),
            default_action=float(os.getenv("TIMEOUT_DEFAULT_ACTION", "600")),
            short_action=float(os.getenv("TIMEOUT_SHORT_ACTION", "30")),
        )

    def get_scaling_config(self) -> ScalingConfig:
        """Get cluster scaling configuration from environment variables."""
        return ScalingConfig(
            enabled=os.getenv("CLUSTER_SCALING_ENABLED", "true").lower() == "true",
            period=float(os.getenv("CLUSTER_SCALING_PERIOD", "2")),
            bootstrap_grace=float(os.getenv("CLUSTER_BOOTSTRAP_GRACE", "120")),
        )

    def get_arangod_config(self) -> ArangodConfig:
        """Get database endpoint configuration from environment variables."""
        return ArangodConfig(
            scheme=os.getenv("ARANGOD_SCHEME", "https"),
            port=int(os.getenv("ARANGOD_PORT", "8529")),
            verify_tls=os.getenv("ARANGOD_VERIFY_TLS", "false").lower() == "true",
            jwt_token=os.getenv("ARANGOD_JWT_TOKEN"),
            username=os.getenv("ARANGOD_USERNAME"),
            password=os.getenv("ARANGOD_PASSWORD"),
        )

    def get_feature_config(self) -> FeatureConfig:
        """Get feature gates from environment variables."""
        return FeatureConfig(
            enabled=_split_set(os.getenv("FEATURES_ENABLED", "")),
            disabled=_split_set(os.getenv("FEATURES_DISABLED", "")),
        )

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            port=int(os.getenv("API_PORT", "8080")),
            host=os.getenv("API_HOST", "0.0.0.0"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        )

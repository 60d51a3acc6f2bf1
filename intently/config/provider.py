"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from ..modules.domain import LabelSelector


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str
    port: int
    debug: bool


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str


@dataclass
class RedisConfig:
    """Redis configuration."""
    host: str
    port: int
    db: int
    password: Optional[str] = None

    @property
    def url(self) -> str:
        # Password is passed separately to avoid URL encoding issues
        return f"redis://{self.host}:{self.port}/{self.db}"


@dataclass
class KubernetesConfig:
    """Cluster API client configuration."""
    kube_config_path: Optional[str]
    in_cluster: bool
    request_timeout: float = 10.0
    page_size: int = 500
    watch_timeout: int = 60
    sync_timeout: float = 30.0
    watch_backoff: float = 5.0


@dataclass
class DistributionConfig:
    """Intent distribution configuration."""
    agent_label: LabelSelector = field(
        default_factory=lambda: LabelSelector(key="app", value="decisionmaker")
    )
    agent_namespaces: List[str] = field(default_factory=list)
    send_timeout: float = 10.0


@dataclass
class AgentConfig:
    """Node agent configuration."""
    host: str
    port: int
    proc_root: str = "/proc"
    cgroup_marker: str = "kubepods"


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_server_config(self) -> ServerConfig:
        """Get manager HTTP server configuration."""
        ...

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration."""
        ...

    def get_redis_config(self) -> RedisConfig:
        """Get Redis configuration."""
        ...

    def get_kubernetes_config(self) -> KubernetesConfig:
        """Get cluster API configuration."""
        ...

    def get_distribution_config(self) -> DistributionConfig:
        """Get intent distribution configuration."""
        ...

    def get_agent_config(self) -> AgentConfig:
        """Get node agent configuration."""
        ...


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_server_config(self) -> ServerConfig:
        """Get manager HTTP server configuration from environment variables."""
        return ServerConfig(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8080")),
            debug=_env_bool("DEBUG"),
        )

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration from environment variables."""
        return LoggingConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

    def get_redis_config(self) -> RedisConfig:
        """Get Redis configuration from environment variables."""
        # Port might be in tcp://host:port format from K8s service links
        redis_port_env = os.getenv("REDIS_PORT", "6379")
        if redis_port_env.startswith("tcp://"):
            redis_port = int(redis_port_env.split(":")[-1])
        else:
            redis_port = int(redis_port_env)

        return RedisConfig(
            host=os.getenv("REDIS_HOST", "intently-redis-master"),
            port=redis_port,
            db=int(os.getenv("REDIS_DB", "0")),
            password=os.getenv("REDIS_PASSWORD"),
        )

    def get_kubernetes_config(self) -> KubernetesConfig:
        """Get cluster API configuration from environment variables."""
        return KubernetesConfig(
            kube_config_path=os.getenv("KUBE_CONFIG_PATH") or None,
            in_cluster=_env_bool("KUBE_IN_CLUSTER"),
            request_timeout=float(os.getenv("KUBE_REQUEST_TIMEOUT", "10")),
            page_size=int(os.getenv("KUBE_PAGE_SIZE", "500")),
            watch_timeout=int(os.getenv("KUBE_WATCH_TIMEOUT", "60")),
            sync_timeout=float(os.getenv("KUBE_SYNC_TIMEOUT", "30")),
            watch_backoff=float(os.getenv("KUBE_WATCH_BACKOFF", "5")),
        )

    def get_distribution_config(self) -> DistributionConfig:
        """Get intent distribution configuration from environment variables."""
        agent_label = LabelSelector.parse(os.getenv("AGENT_LABEL", "app=decisionmaker"))
        if not agent_label.key:
            raise ValueError("AGENT_LABEL must be in 'key' or 'key=value' format")
        agent_label.validate()

        return DistributionConfig(
            agent_label=agent_label,
            agent_namespaces=_env_list("AGENT_NAMESPACES"),
            send_timeout=float(os.getenv("AGENT_SEND_TIMEOUT", "10")),
        )

    def get_agent_config(self) -> AgentConfig:
        """Get node agent configuration from environment variables."""
        return AgentConfig(
            host=os.getenv("AGENT_HOST", "0.0.0.0"),
            port=int(os.getenv("AGENT_PORT", "8082")),
            proc_root=os.getenv("PROC_ROOT", "/proc"),
            cgroup_marker=os.getenv("CGROUP_MARKER", "kubepods"),
        )

"""
Config Module - Black Box Interface

Purpose: Application configuration management
Interface: ConfigProvider, EnvConfigProvider and the typed config sections
Hidden: Config sources, environment parsing

Configuration is built once at startup and passed into each component;
nothing reads it from module-level state.
"""

from .provider import (
    AgentConfig,
    ConfigProvider,
    DistributionConfig,
    EnvConfigProvider,
    KubernetesConfig,
    LoggingConfig,
    RedisConfig,
    ServerConfig,
)

__all__ = [
    "AgentConfig",
    "ConfigProvider",
    "DistributionConfig",
    "EnvConfigProvider",
    "KubernetesConfig",
    "LoggingConfig",
    "RedisConfig",
    "ServerConfig",
]

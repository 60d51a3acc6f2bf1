import logging

import pytest

from intently.config import EnvConfigProvider
from intently.logging_config import HealthCheckFilter, get_logging_config
from intently.modules.domain import LabelSelector


def test_defaults(monkeypatch):
    for name in ("API_PORT", "REDIS_HOST", "REDIS_PORT", "REDIS_DB", "AGENT_LABEL", "AGENT_PORT", "KUBE_IN_CLUSTER"):
        monkeypatch.delenv(name, raising=False)
    provider = EnvConfigProvider()

    assert provider.get_server_config().port == 8080
    assert provider.get_redis_config().host == "intently-redis-master"
    assert provider.get_redis_config().url == "redis://intently-redis-master:6379/0"
    assert provider.get_distribution_config().agent_label == LabelSelector("app", "decisionmaker")
    assert provider.get_agent_config().port == 8082
    assert provider.get_kubernetes_config().in_cluster is False


def test_redis_port_from_service_link(monkeypatch):
    monkeypatch.setenv("REDIS_PORT", "tcp://10.96.0.12:6380")

    assert EnvConfigProvider().get_redis_config().port == 6380


def test_kubernetes_settings(monkeypatch):
    monkeypatch.setenv("KUBE_IN_CLUSTER", "true")
    monkeypatch.setenv("KUBE_PAGE_SIZE", "50")
    monkeypatch.setenv("KUBE_SYNC_TIMEOUT", "2.5")

    config = EnvConfigProvider().get_kubernetes_config()

    assert config.in_cluster is True
    assert config.page_size == 50
    assert config.sync_timeout == 2.5


def test_agent_label_and_namespaces(monkeypatch):
    monkeypatch.setenv("AGENT_LABEL", "component=scheduler-agent")
    monkeypatch.setenv("AGENT_NAMESPACES", "kube-system, intently ,")

    config = EnvConfigProvider().get_distribution_config()

    assert config.agent_label == LabelSelector("component", "scheduler-agent")
    assert config.agent_namespaces == ["kube-system", "intently"]


def test_agent_label_requires_key(monkeypatch):
    monkeypatch.setenv("AGENT_LABEL", "=value")

    with pytest.raises(ValueError):
        EnvConfigProvider().get_distribution_config()


def test_agent_label_rejects_operator_syntax(monkeypatch):
    monkeypatch.setenv("AGENT_LABEL", "app!=decisionmaker")

    with pytest.raises(ValueError):
        EnvConfigProvider().get_distribution_config()


def test_logging_config_levels():
    config = get_logging_config("debug")

    assert config["loggers"]["intently"]["level"] == "DEBUG"
    assert config["loggers"]["kubernetes"]["level"] == "WARNING"


@pytest.mark.parametrize(
    "message, kept",
    [
        ('127.0.0.1:5000 - "GET /health HTTP/1.1" 200', False),
        ('127.0.0.1:5000 - "GET /healthz HTTP/1.1" 200', False),
        ('127.0.0.1:5000 - "POST /api/v1/strategies HTTP/1.1" 201', True),
    ],
)
def test_health_check_filter(message, kept):
    record = logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, message, None, None)

    assert HealthCheckFilter().filter(record) is kept

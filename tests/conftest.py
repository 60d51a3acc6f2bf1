"""
Shared pytest fixtures for Intently tests.

This module provides common fixtures including:
- Domain objects (operator, pods, agents) for the end-to-end scenario
- In-memory directory, repository and transport fakes
- Redis mocks for repository tests
- A fake /proc tree builder for the resolver
"""

import os
import sys
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import FakeDirectory, FakeTransport, InMemoryRepository  # noqa: E402

from intently.config.provider import DistributionConfig, KubernetesConfig  # noqa: E402
from intently.modules.distribution import IntentDistributionEngine  # noqa: E402
from intently.modules.domain import AgentPod, Container, NodeState, Operator, Pod  # noqa: E402

OPERATOR_UID = "7d3f6a52-1c1e-4c3a-9a55-2f1f0d6b8e41"


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def operator():
    return Operator(uid=OPERATOR_UID)


@pytest.fixture
def web_pods():
    """Two web pods on different nodes plus one pod that never matches."""
    return [
        Pod(
            namespace="default",
            labels={"app": "web", "tier": "frontend"},
            pod_id="p1",
            node_id="node-a",
            containers=(Container("c1", "nginx", ("nginx", "-g", "daemon off;")),),
        ),
        Pod(
            namespace="default",
            labels={"app": "web"},
            pod_id="p2",
            node_id="node-b",
            containers=(Container("c2", "nginx", ("nginx",)),),
        ),
        Pod(
            namespace="default",
            labels={"app": "db"},
            pod_id="p3",
            node_id="node-a",
            containers=(Container("c3", "postgres", ("postgres",)),),
        ),
    ]


@pytest.fixture
def agents():
    return [
        AgentPod(node_id="node-a", host="host1", port=9000, state=NodeState.ONLINE),
        AgentPod(node_id="node-b", host="host2", port=9000, state=NodeState.ONLINE),
    ]


# =============================================================================
# Collaborator fakes
# =============================================================================


@pytest.fixture
def directory(web_pods, agents):
    return FakeDirectory(pods=web_pods, agents=agents)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def distribution_config():
    return DistributionConfig()


@pytest.fixture
def engine(directory, repository, transport, distribution_config):
    return IntentDistributionEngine(directory, repository, transport, distribution_config)


@pytest.fixture
def kube_config():
    return KubernetesConfig(
        kube_config_path=None,
        in_cluster=False,
        request_timeout=1.0,
        page_size=2,
        watch_timeout=1,
        sync_timeout=1.0,
        watch_backoff=0.01,
    )


# =============================================================================
# Redis mocks
# =============================================================================


@pytest.fixture
def redis_mock():
    """
    Async Redis client mock.

    ``pipeline()`` returns a MagicMock whose queued commands are plain calls
    and whose ``execute`` is awaitable, matching redis.asyncio pipelines.
    """
    redis = AsyncMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    redis.pipeline = MagicMock(return_value=pipe)
    redis.pipe = pipe
    return redis


# =============================================================================
# Fake process table
# =============================================================================


@pytest.fixture
def proc_tree(tmp_path):
    """
    Build a fake /proc under tmp_path.

    Usage:
        root = proc_tree({42: {"cgroup": "...", "comm": "nginx\\n", "stat": "..."}})
    """

    def build(processes: Dict[object, Dict[str, Optional[str]]]):
        for pid, files in processes.items():
            pid_dir = tmp_path / str(pid)
            pid_dir.mkdir()
            for name, content in files.items():
                if content is not None:
                    (pid_dir / name).write_text(content)
        return str(tmp_path)

    return build

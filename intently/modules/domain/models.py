"""
Intently domain entities.

Pods and agents are point-in-time snapshots of cluster state. Strategies
and intents are the persisted records the control plane owns.
"""

import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


# Enums


class NodeState(str, Enum):
    """Reachability of a node agent, derived from its pod phase."""

    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"

    @classmethod
    def from_pod_phase(cls, phase: Optional[str]) -> "NodeState":
        if phase == "Running":
            return cls.ONLINE
        if phase == "Pending":
            return cls.UNKNOWN
        return cls.OFFLINE


class IntentState(str, Enum):
    """Delivery state of an intent: created -> sent."""

    CREATED = "created"
    SENT = "sent"

    @staticmethod
    def can_transition(src: "IntentState", dst: "IntentState") -> bool:
        """Only created -> sent is allowed; sent -> sent is a no-op."""
        if src == IntentState.CREATED:
            return dst == IntentState.SENT
        return src == dst == IntentState.SENT


# Selectors

_LABEL_NAME_MAX = 63
_DNS_SUBDOMAIN_MAX = 253
_LABEL_NAME_RE = re.compile(r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?")
_DNS_SUBDOMAIN_RE = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*")


def _check_label_name(name: str, what: str) -> None:
    if len(name) > _LABEL_NAME_MAX:
        raise ValueError(f"{what} {name!r} is longer than {_LABEL_NAME_MAX} characters")
    if not _LABEL_NAME_RE.fullmatch(name):
        raise ValueError(
            f"{what} {name!r} must consist of alphanumerics, '-', '_' or '.', "
            "and start and end with an alphanumeric"
        )


def validate_label_key(key: str) -> None:
    """Check a qualified label key: ``[prefix/]name``. Raises ValueError."""
    prefix, slash, name = key.rpartition("/")
    if slash:
        if not prefix or len(prefix) > _DNS_SUBDOMAIN_MAX or not _DNS_SUBDOMAIN_RE.fullmatch(prefix):
            raise ValueError(f"Label key prefix {prefix!r} must be a DNS subdomain")
    _check_label_name(name, "Label key name")


def validate_label_value(value: str) -> None:
    """Check a label value; empty is allowed. Raises ValueError."""
    if value:
        _check_label_name(value, "Label value")


@dataclass(frozen=True)
class LabelSelector:
    """Empty value means "key exists", otherwise exact equality."""

    key: str
    value: str = ""

    def validate(self) -> None:
        """Raise ValueError unless key and value are valid label syntax."""
        validate_label_key(self.key)
        validate_label_value(self.value)

    def to_requirement(self) -> str:
        if not self.value:
            return self.key
        return f"{self.key}={self.value}"

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.key not in labels:
            return False
        if not self.value:
            return True
        return labels[self.key] == self.value

    @classmethod
    def parse(cls, text: str) -> "LabelSelector":
        """Parse ``key`` or ``key=value``."""
        key, _, value = text.strip().partition("=")
        return cls(key=key.strip(), value=value.strip())


def build_label_selector(selectors: Sequence[LabelSelector]) -> str:
    """
    Render selectors as a Kubernetes label selector string.

    Tokens are joined by commas (logical AND). Selectors without a key are
    skipped; an empty result selects everything.
    """
    return ",".join(s.to_requirement() for s in selectors if s.key)


def labels_match(labels: Optional[Mapping[str, str]], selectors: Sequence[LabelSelector]) -> bool:
    """Check a label map against every selector (AND)."""
    labels = labels or {}
    return all(s.matches(labels) for s in selectors if s.key)


# Cluster snapshots


@dataclass(frozen=True)
class Container:
    container_id: str
    name: str
    command: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Pod:
    """Observed pod placement. Replaced wholesale, never mutated."""

    namespace: str
    labels: Mapping[str, str]
    pod_id: str
    node_id: str
    containers: Tuple[Container, ...] = ()

    def labels_to_selectors(self) -> List[LabelSelector]:
        return [LabelSelector(key=k, value=v) for k, v in self.labels.items()]


@dataclass(frozen=True)
class AgentPod:
    """Network endpoint of the scheduling agent on one node."""

    node_id: str
    host: str
    port: int
    state: NodeState

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"({self.node_id}){self.endpoint}"


# Persisted records


@dataclass(frozen=True)
class Operator:
    """Identity on whose behalf a strategy is created."""

    uid: str


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Strategy:
    """
    Declarative selector plus scheduling hints.

    Filled in by the caller, stamped once by the distribution engine and
    immutable afterwards.
    """

    namespaces: List[str] = field(default_factory=list)
    label_selectors: List[LabelSelector] = field(default_factory=list)
    command_regex: str = ""
    priority: int = 0
    execution_time: int = 0
    strategy_namespace: str = ""
    id: Optional[str] = None
    creator_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def stamp(self, operator: Operator) -> None:
        if self.id is None:
            self.id = _new_id()
        self.creator_id = operator.uid
        self.created_at = _now()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Strategy":
        created_at = data.get("created_at")
        return cls(
            id=data.get("id"),
            creator_id=data.get("creator_id"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            namespaces=list(data.get("namespaces") or []),
            label_selectors=[
                LabelSelector(key=s.get("key", ""), value=s.get("value", ""))
                for s in data.get("label_selectors") or []
            ],
            command_regex=data.get("command_regex", ""),
            priority=data.get("priority", 0),
            execution_time=data.get("execution_time", 0),
            strategy_namespace=data.get("strategy_namespace", ""),
        )


@dataclass
class Intent:
    """One per-pod instruction materialized from a strategy."""

    strategy_id: str
    pod_id: str
    node_id: str
    namespace: str
    command_regex: str = ""
    priority: int = 0
    execution_time: int = 0
    pod_labels: Dict[str, str] = field(default_factory=dict)
    state: IntentState = IntentState.CREATED
    creator_id: Optional[str] = None
    created_at: Optional[datetime] = None
    id: str = field(default_factory=_new_id)

    @classmethod
    def from_strategy(cls, strategy: Strategy, pod: Pod) -> "Intent":
        return cls(
            strategy_id=strategy.id,
            creator_id=strategy.creator_id,
            created_at=strategy.created_at,
            pod_id=pod.pod_id,
            node_id=pod.node_id,
            namespace=pod.namespace,
            command_regex=strategy.command_regex,
            priority=strategy.priority,
            execution_time=strategy.execution_time,
            pod_labels=dict(pod.labels),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Intent":
        created_at = data.get("created_at")
        return cls(
            id=data["id"],
            strategy_id=data.get("strategy_id", ""),
            creator_id=data.get("creator_id"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            pod_id=data.get("pod_id", ""),
            node_id=data.get("node_id", ""),
            namespace=data.get("namespace", ""),
            command_regex=data.get("command_regex", ""),
            priority=data.get("priority", 0),
            execution_time=data.get("execution_time", 0),
            pod_labels=dict(data.get("pod_labels") or {}),
            state=IntentState(data.get("state", IntentState.CREATED.value)),
        )


# Query options


@dataclass(frozen=True)
class QueryPodsOptions:
    namespaces: Tuple[str, ...] = ()
    label_selectors: Tuple[LabelSelector, ...] = ()
    command_regex: str = ""


@dataclass(frozen=True)
class QueryAgentPodsOptions:
    agent_label: LabelSelector
    namespaces: Tuple[str, ...] = ()
    node_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StrategyFilter:
    creator_ids: Tuple[str, ...] = ()
    strategy_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class IntentFilter:
    creator_ids: Tuple[str, ...] = ()
    strategy_ids: Tuple[str, ...] = ()
    states: Tuple[IntentState, ...] = ()

    def matches(self, intent: Intent) -> bool:
        if self.creator_ids and intent.creator_id not in self.creator_ids:
            return False
        if self.strategy_ids and intent.strategy_id not in self.strategy_ids:
            return False
        if self.states and intent.state not in self.states:
            return False
        return True


# Agent side


@dataclass
class PodProcess:
    pid: int
    command: str = ""
    parent_pid: int = 0


@dataclass
class PodProcessSnapshot:
    """Processes found for one pod during a single process-table scan."""

    pod_uid: str
    container_id: str = ""
    processes: List[PodProcess] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

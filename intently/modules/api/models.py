"""
Intently API models.

Request and response bodies of the manager and agent HTTP surfaces.
Domain entities are converted at the edge; nothing below the API layer
depends on pydantic.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain import (
    Intent,
    IntentState,
    LabelSelector,
    PodProcessSnapshot,
    Strategy,
    validate_label_key,
    validate_label_value,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Request Models (API Input)


class LabelSelectorModel(BaseModel):
    """Label requirement: empty value means the key must exist."""

    key: str = Field(..., min_length=1, max_length=317, description="Label key")
    value: str = Field(default="", max_length=63, description="Label value")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v):
        validate_label_key(v)
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v):
        validate_label_value(v)
        return v

    def to_domain(self) -> LabelSelector:
        return LabelSelector(key=self.key, value=self.value)


class CreateStrategyRequest(BaseModel):
    """Request to create a scheduling strategy."""

    namespaces: List[str] = Field(
        default_factory=list, description="Namespaces to search, empty means all"
    )
    label_selectors: List[LabelSelectorModel] = Field(
        default_factory=list, description="All selectors must match (AND)"
    )
    command_regex: str = Field(default="", description="Regex a container command must match")
    priority: int = Field(default=0, description="Scheduling priority hint")
    execution_time: int = Field(default=0, ge=0, description="Expected execution time hint")
    strategy_namespace: str = Field(default="", description="Namespace the strategy belongs to")

    @field_validator("namespaces")
    @classmethod
    def validate_namespaces(cls, v):
        """Drop blanks and duplicates, keep order."""
        return list(dict.fromkeys(ns.strip() for ns in v if ns and ns.strip()))

    def to_domain(self) -> Strategy:
        return Strategy(
            namespaces=list(self.namespaces),
            label_selectors=[s.to_domain() for s in self.label_selectors],
            command_regex=self.command_regex,
            priority=self.priority,
            execution_time=self.execution_time,
            strategy_namespace=self.strategy_namespace,
        )


# Response Models (API Output)


class StrategyResponse(BaseModel):
    """A stamped strategy."""

    id: str
    creator_id: str
    created_at: datetime
    namespaces: List[str]
    label_selectors: List[LabelSelectorModel]
    command_regex: str
    priority: int
    execution_time: int
    strategy_namespace: str

    @classmethod
    def from_domain(cls, strategy: Strategy) -> "StrategyResponse":
        return cls(
            id=strategy.id,
            creator_id=strategy.creator_id,
            created_at=strategy.created_at,
            namespaces=list(strategy.namespaces),
            label_selectors=[
                LabelSelectorModel(key=s.key, value=s.value) for s in strategy.label_selectors
            ],
            command_regex=strategy.command_regex,
            priority=strategy.priority,
            execution_time=strategy.execution_time,
            strategy_namespace=strategy.strategy_namespace,
        )


class IntentResponse(BaseModel):
    """One per-pod intent with its delivery state."""

    id: str
    strategy_id: str
    creator_id: Optional[str] = None
    created_at: Optional[datetime] = None
    pod_id: str
    node_id: str
    namespace: str
    command_regex: str
    priority: int
    execution_time: int
    pod_labels: Dict[str, str]
    state: IntentState

    @classmethod
    def from_domain(cls, intent: Intent) -> "IntentResponse":
        return cls(**intent.to_dict())


class StrategyListResponse(BaseModel):
    strategies: List[StrategyResponse]
    count: int


class IntentListResponse(BaseModel):
    intents: List[IntentResponse]
    count: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status", pattern="^(healthy|unhealthy|degraded)$")
    redis: str = Field(..., description="Redis connection status")
    directory: str = Field(..., description="Pod cache sync status")
    version: str = Field(default="1.0.0", description="API version")


# Agent intake


class AgentIntent(BaseModel):
    """Intent as delivered to an agent (camelCase wire names)."""

    model_config = ConfigDict(populate_by_name=True)

    pod_id: str = Field(..., alias="podID", min_length=1)
    node_id: str = Field(default="", alias="nodeID")
    namespace: str = Field(default="", alias="k8sNamespace")
    command_regex: str = Field(default="", alias="commandRegex")
    priority: int = 0
    execution_time: int = Field(default=0, alias="executionTime")
    pod_labels: Dict[str, str] = Field(default_factory=dict, alias="podLabels")


class HandleIntentsRequest(BaseModel):
    """A batch of intents, accepted or rejected as a whole."""

    intents: List[AgentIntent] = Field(..., description="Intents for pods on this node")


class PodProcessesModel(BaseModel):
    pod_uid: str
    container_id: str
    processes: List[Dict[str, Any]]

    @classmethod
    def from_domain(cls, snapshot: PodProcessSnapshot) -> "PodProcessesModel":
        return cls(**snapshot.to_dict())


# Envelopes


class SuccessResponse(BaseModel):
    """Standard success envelope."""

    success: bool = True
    data: Optional[Any] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow)


__all__ = [
    "LabelSelectorModel",
    "CreateStrategyRequest",
    "StrategyResponse",
    "IntentResponse",
    "StrategyListResponse",
    "IntentListResponse",
    "HealthResponse",
    "AgentIntent",
    "HandleIntentsRequest",
    "PodProcessesModel",
    "SuccessResponse",
    "ErrorResponse",
]

"""
API Module - Black Box Interface

Purpose: Wire models for the manager and agent HTTP surfaces
Interface: pydantic request/response models with to_domain()/from_domain()
Hidden: Validation rules, camelCase aliases, envelopes

Routes live in intently.main and intently.modules.agent.server; this
module only defines what crosses the wire.
"""

from .models import (
    AgentIntent,
    CreateStrategyRequest,
    ErrorResponse,
    HandleIntentsRequest,
    HealthResponse,
    IntentListResponse,
    IntentResponse,
    LabelSelectorModel,
    PodProcessesModel,
    StrategyListResponse,
    StrategyResponse,
    SuccessResponse,
)

__all__ = [
    "AgentIntent",
    "CreateStrategyRequest",
    "ErrorResponse",
    "HandleIntentsRequest",
    "HealthResponse",
    "IntentListResponse",
    "IntentResponse",
    "LabelSelectorModel",
    "PodProcessesModel",
    "StrategyListResponse",
    "StrategyResponse",
    "SuccessResponse",
]

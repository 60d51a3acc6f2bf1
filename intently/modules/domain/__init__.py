"""
Domain Module - Black Box Interface

Purpose: Entities shared by the control plane and the node agent
Interface: Pod, AgentPod, LabelSelector, Strategy, Intent, IntentState
Hidden: Serialization details

Has no dependencies on any other module.
"""

from .models import (
    AgentPod,
    Container,
    Intent,
    IntentFilter,
    IntentState,
    LabelSelector,
    NodeState,
    Operator,
    Pod,
    PodProcess,
    PodProcessSnapshot,
    QueryAgentPodsOptions,
    QueryPodsOptions,
    Strategy,
    StrategyFilter,
    build_label_selector,
    labels_match,
    validate_label_key,
    validate_label_value,
)

__all__ = [
    "AgentPod",
    "Container",
    "Intent",
    "IntentFilter",
    "IntentState",
    "LabelSelector",
    "NodeState",
    "Operator",
    "Pod",
    "PodProcess",
    "PodProcessSnapshot",
    "QueryAgentPodsOptions",
    "QueryPodsOptions",
    "Strategy",
    "StrategyFilter",
    "build_label_selector",
    "labels_match",
    "validate_label_key",
    "validate_label_value",
]

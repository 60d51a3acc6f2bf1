"""
Distribution Module - Black Box Interface

Purpose: Turn a strategy into per-pod intents and deliver them to node agents
Interface: IntentDistributionEngine.create_strategy(), list_strategies(), list_intents()
Hidden: Agent selection, batching per agent, state reconciliation

Depends only on the directory, storage and transport interfaces.
"""

from .engine import IntentDistributionEngine, group_intents_by_agent, select_agents

__all__ = ["IntentDistributionEngine", "group_intents_by_agent", "select_agents"]

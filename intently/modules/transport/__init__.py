"""
Transport Module - Black Box Interface

Purpose: Deliver scheduling intents to node agents
Interface: AgentTransport protocol, AgentClient.send_intents()
Hidden: HTTP client, wire format, endpoint layout

Can be replaced with any push mechanism (gRPC, message queue).
"""

from .client import AgentClient, intent_payload
from .interfaces import AgentTransport

__all__ = ["AgentClient", "AgentTransport", "intent_payload"]

"""
Intently - Scheduling Intent Control Plane

Turns declarative scheduling strategies into per-pod scheduling intents
and routes them to the agent running on each pod's node.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- domain: Entities and the intent state machine
- directory: Cached view of cluster pod placement
- distribution: Strategy -> intent matching and delivery
- storage: Strategy and intent persistence
- transport: Intent delivery to node agents
- agent: Node agent (intake endpoint, process resolver)
- api: REST API models
"""

__version__ = "1.0.0"

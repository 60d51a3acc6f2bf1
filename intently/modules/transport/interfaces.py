"""Agent transport interfaces following Black Box Design principles."""
from typing import Protocol, Sequence

from ..domain import AgentPod, Intent


class AgentTransport(Protocol):
    """Delivers intent batches to node agents."""

    async def send_intents(self, agent: AgentPod, intents: Sequence[Intent]) -> None:
        """
        Deliver one batch to one agent.

        Raises:
            DeliveryError: If the agent is unreachable or rejects the batch
        """
        ...

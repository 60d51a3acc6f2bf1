"""
HTTP client delivering intent batches to node agents.

Each batch is one POST to the agent's intake endpoint; the agent accepts
or rejects the batch as a whole.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..domain import AgentPod, Intent
from ..errors import DeliveryError

logger = logging.getLogger(__name__)

INTENTS_PATH = "/api/v1/intents"


def intent_payload(intent: Intent) -> Dict[str, Any]:
    """Wire format of one intent as the agent expects it."""
    return {
        "podID": intent.pod_id,
        "nodeID": intent.node_id,
        "k8sNamespace": intent.namespace,
        "commandRegex": intent.command_regex,
        "priority": intent.priority,
        "executionTime": intent.execution_time,
        "podLabels": dict(intent.pod_labels),
    }


class AgentClient:
    """Agent transport over httpx."""

    def __init__(self, timeout: float = 10.0, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the client.

        Args:
            timeout: Per-request timeout in seconds
            http_client: Optional pre-built client (tests inject a MockTransport)
        """
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def send_intents(self, agent: AgentPod, intents: Sequence[Intent]) -> None:
        """
        Deliver a batch of intents to one agent.

        Raises:
            DeliveryError: On transport failure or any non-200 response
        """
        logger.debug(
            f"Sending {len(intents)} intents to agent (host:{agent.host} "
            f"nodeID:{agent.node_id} port:{agent.port})"
        )

        url = f"http://{agent.host}:{agent.port}{INTENTS_PATH}"
        body: Dict[str, List[Dict[str, Any]]] = {"intents": [intent_payload(i) for i in intents]}

        try:
            response = await self._client.post(url, json=body)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Agent {agent} unreachable: {e}", host=agent.host) from e

        if response.status_code != 200:
            raise DeliveryError(
                f"Agent {agent} returned non-OK status: {response.status_code}",
                host=agent.host,
                status=response.status_code,
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

"""
Intent distribution engine.

The only state-changing workflow of the control plane: match a strategy
to live pods, persist one intent per pod, deliver the intents to the
agents on the pods' nodes and record which batches were delivered.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Sequence, Tuple

from ...config.provider import DistributionConfig
from ..directory import Directory
from ..domain import (
    AgentPod,
    Intent,
    IntentFilter,
    IntentState,
    NodeState,
    Operator,
    QueryAgentPodsOptions,
    QueryPodsOptions,
    Strategy,
    StrategyFilter,
)
from ..errors import (
    DeliveryError,
    InvalidOperatorError,
    NoMatchingPodsError,
    RepositoryError,
    StateUpdateError,
)
from ..storage import Repository
from ..transport import AgentTransport

logger = logging.getLogger(__name__)

_STATE_RANK = {NodeState.ONLINE: 0, NodeState.UNKNOWN: 1, NodeState.OFFLINE: 2}


class IntentDistributionEngine:
    def __init__(
        self,
        directory: Directory,
        repository: Repository,
        transport: AgentTransport,
        config: DistributionConfig,
    ):
        """
        Initialize the engine.

        Args:
            directory: Pod and agent lookup
            repository: Strategy and intent persistence
            transport: Delivery of intent batches to agents
            config: Agent label, agent namespaces
        """
        self.directory = directory
        self.repository = repository
        self.transport = transport
        self.config = config

    async def create_strategy(self, operator: Operator, strategy: Strategy) -> Strategy:
        """
        Create a strategy and distribute its intents.

        Args:
            operator: Identity creating the strategy
            strategy: Unstamped strategy from the caller

        Returns:
            The stamped strategy

        Raises:
            InvalidOperatorError: Operator UID is malformed
            InvalidCommandRegexError: Strategy regex does not compile
            NoMatchingPodsError: Nothing matched, nothing persisted
            RepositoryError: Strategy and intents could not be stored
            DeliveryError: An agent failed; earlier agents keep their sent state
            StateUpdateError: An agent accepted a batch but its state was not recorded

        Logic:
        1. Validate operator
        2. Resolve matching pods
        3. Stamp strategy, one intent per pod
        4. Persist strategy and intents atomically
        5. Resolve agents on the touched nodes (none = success, intents stay created)
        6. Deliver per agent, marking each delivered batch as sent
        """
        operator = _validate_operator(operator)

        query_opt = QueryPodsOptions(
            namespaces=tuple(strategy.namespaces),
            label_selectors=tuple(strategy.label_selectors),
            command_regex=strategy.command_regex,
        )
        pods = await asyncio.to_thread(self.directory.query_pods, query_opt)
        if not pods:
            raise NoMatchingPodsError(f"No pods match the strategy criteria: {query_opt}")

        logger.debug(f"Found {len(pods)} pods matching the strategy criteria")

        strategy.stamp(operator)
        intents = [Intent.from_strategy(strategy, pod) for pod in pods]
        node_ids = list(dict.fromkeys(pod.node_id for pod in pods))

        await self.repository.insert_strategy_and_intents(strategy, intents)

        agent_opt = QueryAgentPodsOptions(
            agent_label=self.config.agent_label,
            namespaces=tuple(self.config.agent_namespaces),
            node_ids=tuple(node_ids),
        )
        agents = await asyncio.to_thread(self.directory.query_agent_pods, agent_opt)
        if not agents:
            logger.warning(
                f"No agent pods found for strategy {strategy.id}; "
                f"{len(intents)} intents remain created, opts: {agent_opt}"
            )
            return strategy

        logger.debug(f"Found {len(agents)} agent pods for strategy {strategy.id}")

        batches = group_intents_by_agent(select_agents(agents), intents)
        for endpoint in sorted(batches):
            agent, batch = batches[endpoint]
            await self._deliver(agent, batch)

        return strategy

    async def list_strategies(self, operator: Operator) -> List[Strategy]:
        """Strategies created by the operator."""
        operator = _validate_operator(operator)
        return await self.repository.query_strategies(StrategyFilter(creator_ids=(operator.uid,)))

    async def list_intents(
        self,
        operator: Operator,
        strategy_ids: Sequence[str] = (),
        states: Sequence[IntentState] = (),
    ) -> List[Intent]:
        """Intents of strategies created by the operator."""
        operator = _validate_operator(operator)
        return await self.repository.query_intents(
            IntentFilter(
                creator_ids=(operator.uid,),
                strategy_ids=tuple(strategy_ids),
                states=tuple(states),
            )
        )

    async def _deliver(self, agent: AgentPod, batch: List[Intent]) -> None:
        """Send one batch and record it as sent. The pair is never split."""
        try:
            await self.transport.send_intents(agent, batch)
        except DeliveryError as e:
            logger.error(f"Failed to send {len(batch)} intents to agent {agent}: {e}")
            raise

        intent_ids = [intent.id for intent in batch]
        try:
            await self.repository.batch_update_intent_state(intent_ids, IntentState.SENT)
        except RepositoryError as e:
            raise StateUpdateError(
                f"Delivered {len(intent_ids)} intents to agent {agent} but could not mark them sent: {e}",
                host=agent.host,
                intent_ids=intent_ids,
            ) from e

        for intent in batch:
            intent.state = IntentState.SENT
        logger.info(f"Sent {len(batch)} scheduling intents to agent {agent.host}")


def _validate_operator(operator: Operator) -> Operator:
    if operator is None or not operator.uid:
        raise InvalidOperatorError("Operator identity is required")
    try:
        parsed = uuid.UUID(str(operator.uid))
    except ValueError as e:
        raise InvalidOperatorError(f"Invalid operator ID {operator.uid}") from e
    return Operator(uid=str(parsed))


def select_agents(agents: Sequence[AgentPod]) -> Dict[str, AgentPod]:
    """
    Pick exactly one agent per node.

    When several agent pods report the same node (e.g. during a rollout)
    the online one wins, ties broken by endpoint; the rest are logged.
    """
    by_node: Dict[str, List[AgentPod]] = {}
    for agent in agents:
        by_node.setdefault(agent.node_id, []).append(agent)

    selected = {}
    for node_id, candidates in by_node.items():
        candidates.sort(key=lambda a: (_STATE_RANK[a.state], a.host, a.port))
        selected[node_id] = candidates[0]
        if len(candidates) > 1:
            skipped = ", ".join(str(a) for a in candidates[1:])
            logger.warning(
                f"Multiple agents on node {node_id}; using {candidates[0]}, skipping {skipped}"
            )
    return selected


def group_intents_by_agent(
    agents_by_node: Dict[str, AgentPod], intents: Sequence[Intent]
) -> Dict[str, Tuple[AgentPod, List[Intent]]]:
    """Partition intents by the endpoint of the agent serving their node."""
    batches: Dict[str, Tuple[AgentPod, List[Intent]]] = {}
    orphaned = 0
    for intent in intents:
        agent = agents_by_node.get(intent.node_id)
        if agent is None:
            orphaned += 1
            continue
        batches.setdefault(agent.endpoint, (agent, []))[1].append(intent)

    if orphaned:
        logger.warning(f"{orphaned} intents target nodes without an agent and remain created")
    return batches

import pytest

from fakes import FakeDirectory, FakeTransport

from intently.modules.distribution import IntentDistributionEngine, group_intents_by_agent, select_agents
from intently.modules.domain import (
    AgentPod,
    Intent,
    IntentState,
    LabelSelector,
    NodeState,
    Operator,
    Pod,
    Strategy,
)
from intently.modules.errors import (
    DeliveryError,
    InvalidCommandRegexError,
    InvalidOperatorError,
    NoMatchingPodsError,
    RepositoryError,
    StateUpdateError,
)


def web_strategy(**overrides):
    fields = dict(
        namespaces=["default"],
        label_selectors=[LabelSelector("app", "web")],
        priority=5,
        execution_time=30,
    )
    fields.update(overrides)
    return Strategy(**fields)


@pytest.mark.asyncio
async def test_end_to_end_delivery(engine, operator, repository, transport):
    """Strategy matching p1 on node-a and p2 on node-b lands on host1 and host2."""
    strategy = await engine.create_strategy(operator, web_strategy())

    assert strategy.id is not None
    assert strategy.creator_id == operator.uid
    assert strategy.created_at is not None

    assert [i.pod_id for i in transport.sent["host1"]] == ["p1"]
    assert [i.pod_id for i in transport.sent["host2"]] == ["p2"]

    intents = await engine.list_intents(operator)
    assert sorted(i.pod_id for i in intents) == ["p1", "p2"]
    assert all(i.state == IntentState.SENT for i in intents)


@pytest.mark.asyncio
async def test_intents_are_one_per_matched_pod(engine, operator, repository, web_pods):
    strategy = await engine.create_strategy(operator, web_strategy())

    stored = list(repository.intents.values())
    assert len(stored) == 2
    by_pod = {i.pod_id: i for i in stored}
    for pod in web_pods[:2]:
        intent = by_pod[pod.pod_id]
        assert intent.strategy_id == strategy.id
        assert intent.node_id == pod.node_id
        assert intent.pod_labels == dict(pod.labels)
        assert intent.priority == 5
        assert intent.execution_time == 30
        assert intent.creator_id == operator.uid


@pytest.mark.asyncio
async def test_zero_match_persists_nothing(engine, operator, repository, transport):
    with pytest.raises(NoMatchingPodsError):
        await engine.create_strategy(
            operator, web_strategy(label_selectors=[LabelSelector("app", "missing")])
        )

    assert repository.strategies == {}
    assert repository.intents == {}
    assert transport.calls == []


@pytest.mark.asyncio
async def test_partial_failure_keeps_earlier_hosts_sent(directory, repository, distribution_config, operator):
    transport = FakeTransport(failing_hosts={"host2"})
    engine = IntentDistributionEngine(directory, repository, transport, distribution_config)

    with pytest.raises(DeliveryError) as exc_info:
        await engine.create_strategy(operator, web_strategy())

    assert exc_info.value.host == "host2"
    states = {i.pod_id: i.state for i in repository.intents.values()}
    assert states == {"p1": IntentState.SENT, "p2": IntentState.CREATED}


@pytest.mark.asyncio
async def test_no_agents_leaves_intents_created(web_pods, repository, transport, distribution_config, operator):
    engine = IntentDistributionEngine(FakeDirectory(pods=web_pods), repository, transport, distribution_config)

    strategy = await engine.create_strategy(operator, web_strategy())

    assert strategy.id in repository.strategies
    assert len(repository.intents) == 2
    assert all(i.state == IntentState.CREATED for i in repository.intents.values())
    assert transport.calls == []


@pytest.mark.asyncio
async def test_node_without_agent_is_skipped(web_pods, repository, transport, distribution_config, operator):
    directory = FakeDirectory(
        pods=web_pods,
        agents=[AgentPod(node_id="node-a", host="host1", port=9000, state=NodeState.ONLINE)],
    )
    engine = IntentDistributionEngine(directory, repository, transport, distribution_config)

    await engine.create_strategy(operator, web_strategy())

    assert list(transport.sent) == ["host1"]
    states = {i.pod_id: i.state for i in repository.intents.values()}
    assert states == {"p1": IntentState.SENT, "p2": IntentState.CREATED}


@pytest.mark.asyncio
async def test_agent_query_uses_label_and_touched_nodes(engine, directory, operator):
    await engine.create_strategy(operator, web_strategy())

    (agent_query,) = directory.agent_queries
    assert agent_query.agent_label == LabelSelector("app", "decisionmaker")
    assert agent_query.node_ids == ("node-a", "node-b")


@pytest.mark.asyncio
async def test_duplicate_agents_deliver_once_per_node(web_pods, repository, transport, distribution_config, operator):
    directory = FakeDirectory(
        pods=web_pods,
        agents=[
            AgentPod(node_id="node-a", host="host9", port=9000, state=NodeState.OFFLINE),
            AgentPod(node_id="node-a", host="host1", port=9000, state=NodeState.ONLINE),
            AgentPod(node_id="node-b", host="host2", port=9000, state=NodeState.ONLINE),
        ],
    )
    engine = IntentDistributionEngine(directory, repository, transport, distribution_config)

    await engine.create_strategy(operator, web_strategy())

    assert sorted(transport.calls) == ["host1", "host2"]


@pytest.mark.asyncio
async def test_state_update_failure_names_host_and_intents(engine, operator, repository, transport):
    repository.fail_update = True

    with pytest.raises(StateUpdateError) as exc_info:
        await engine.create_strategy(operator, web_strategy())

    # delivery to the first host happened, then the run stopped
    assert transport.calls == ["host1"]
    assert exc_info.value.host == "host1"
    assert len(exc_info.value.intent_ids) == 1
    assert exc_info.value.intent_ids == repository.update_calls[0]


@pytest.mark.asyncio
async def test_insert_failure_stops_before_delivery(engine, operator, repository, transport):
    repository.fail_insert = True

    with pytest.raises(RepositoryError):
        await engine.create_strategy(operator, web_strategy())

    assert transport.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("uid", ["", "not-a-uuid", "1234"])
async def test_invalid_operator_rejected_before_side_effects(engine, directory, repository, uid):
    with pytest.raises(InvalidOperatorError):
        await engine.create_strategy(Operator(uid=uid), web_strategy())

    assert directory.pod_queries == []
    assert repository.strategies == {}


@pytest.mark.asyncio
async def test_invalid_regex_rejected(engine, operator, repository):
    with pytest.raises(InvalidCommandRegexError):
        await engine.create_strategy(operator, web_strategy(command_regex="(unclosed"))

    assert repository.strategies == {}


@pytest.mark.asyncio
async def test_list_strategies_scoped_to_creator(engine, operator):
    other = Operator(uid="0b6a7e4e-8f0d-4f59-8c47-5d0f2d6b5b10")
    mine = await engine.create_strategy(operator, web_strategy())
    await engine.create_strategy(other, web_strategy())

    strategies = await engine.list_strategies(operator)

    assert [s.id for s in strategies] == [mine.id]


@pytest.mark.asyncio
async def test_list_intents_filters_by_state(web_pods, repository, transport, distribution_config, operator):
    directory = FakeDirectory(
        pods=web_pods,
        agents=[AgentPod(node_id="node-a", host="host1", port=9000, state=NodeState.ONLINE)],
    )
    engine = IntentDistributionEngine(directory, repository, transport, distribution_config)
    await engine.create_strategy(operator, web_strategy())

    pending = await engine.list_intents(operator, states=[IntentState.CREATED])

    assert [i.pod_id for i in pending] == ["p2"]


def test_select_agents_prefers_online_then_host():
    agents = [
        AgentPod(node_id="n1", host="10.0.0.9", port=1, state=NodeState.UNKNOWN),
        AgentPod(node_id="n1", host="10.0.0.5", port=1, state=NodeState.ONLINE),
        AgentPod(node_id="n1", host="10.0.0.3", port=1, state=NodeState.ONLINE),
    ]

    selected = select_agents(agents)

    assert selected == {"n1": agents[2]}


def test_group_intents_by_agent_drops_orphans():
    agent = AgentPod(node_id="n1", host="h1", port=80, state=NodeState.ONLINE)
    strategy = web_strategy()
    strategy.stamp(Operator(uid="7d3f6a52-1c1e-4c3a-9a55-2f1f0d6b8e41"))
    intents = [
        Intent.from_strategy(strategy, Pod("default", {}, "a", "n1")),
        Intent.from_strategy(strategy, Pod("default", {}, "b", "n2")),
        Intent.from_strategy(strategy, Pod("default", {}, "c", "n1")),
    ]

    batches = group_intents_by_agent({"n1": agent}, intents)

    assert list(batches) == ["h1:80"]
    assert [i.pod_id for i in batches["h1:80"][1]] == ["a", "c"]

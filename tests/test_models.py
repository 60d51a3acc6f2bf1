import pytest
from pydantic import ValidationError

from intently.modules.api import AgentIntent, CreateStrategyRequest
from intently.modules.domain import (
    Intent,
    IntentFilter,
    IntentState,
    LabelSelector,
    NodeState,
    Operator,
    Pod,
    Strategy,
    build_label_selector,
    labels_match,
)


class TestLabelSelectors:
    def test_build_label_selector(self):
        selectors = [LabelSelector("app", "web"), LabelSelector("tier"), LabelSelector("", "ignored")]

        assert build_label_selector(selectors) == "app=web,tier"

    def test_empty_selectors_match_everything(self):
        assert build_label_selector([]) == ""
        assert labels_match({"a": "b"}, [])
        assert labels_match(None, [])

    @pytest.mark.parametrize(
        "labels, expected",
        [
            ({"app": "web", "tier": "fe"}, True),
            ({"app": "web"}, False),
            ({"app": "db", "tier": "fe"}, False),
            ({"tier": "fe", "app": "web", "extra": "x"}, True),
        ],
    )
    def test_labels_match_is_and(self, labels, expected):
        selectors = [LabelSelector("app", "web"), LabelSelector("tier")]

        assert labels_match(labels, selectors) is expected

    def test_parse(self):
        assert LabelSelector.parse(" app = web ") == LabelSelector("app", "web")
        assert LabelSelector.parse("tier") == LabelSelector("tier", "")

    @pytest.mark.parametrize(
        "selector",
        [
            LabelSelector("app", "web"),
            LabelSelector("tier"),
            LabelSelector("app.kubernetes.io/name", "my_app-1.0"),
            LabelSelector("k", "a" * 63),
        ],
    )
    def test_valid_selectors(self, selector):
        selector.validate()

    @pytest.mark.parametrize(
        "selector",
        [
            LabelSelector("app!", "web"),
            LabelSelector("!tier"),
            LabelSelector("app", "web,tier"),
            LabelSelector("app", "in (a)"),
            LabelSelector("-app", "web"),
            LabelSelector("Example.COM/app", "web"),
            LabelSelector("/app", "web"),
            LabelSelector("a/b/c", "web"),
            LabelSelector("k" * 64),
            LabelSelector("app", "a" * 64),
        ],
    )
    def test_invalid_selectors(self, selector):
        with pytest.raises(ValueError):
            selector.validate()


class TestStates:
    @pytest.mark.parametrize(
        "phase, state",
        [
            ("Running", NodeState.ONLINE),
            ("Pending", NodeState.UNKNOWN),
            ("Failed", NodeState.OFFLINE),
            ("Succeeded", NodeState.OFFLINE),
            (None, NodeState.OFFLINE),
        ],
    )
    def test_node_state_from_phase(self, phase, state):
        assert NodeState.from_pod_phase(phase) == state

    def test_intent_transitions(self):
        assert IntentState.can_transition(IntentState.CREATED, IntentState.SENT)
        assert IntentState.can_transition(IntentState.SENT, IntentState.SENT)
        assert not IntentState.can_transition(IntentState.SENT, IntentState.CREATED)
        assert not IntentState.can_transition(IntentState.CREATED, IntentState.CREATED)


class TestStrategyAndIntent:
    def test_stamp_and_materialize(self):
        strategy = Strategy(namespaces=["default"], command_regex="nginx", priority=4, execution_time=20)
        strategy.stamp(Operator(uid="op-1"))
        pod = Pod(namespace="default", labels={"app": "web"}, pod_id="p1", node_id="node-a")

        intent = Intent.from_strategy(strategy, pod)

        assert strategy.id and strategy.created_at.tzinfo is not None
        assert intent.strategy_id == strategy.id
        assert intent.creator_id == "op-1"
        assert intent.state == IntentState.CREATED
        assert (intent.pod_id, intent.node_id, intent.namespace) == ("p1", "node-a", "default")
        assert (intent.command_regex, intent.priority, intent.execution_time) == ("nginx", 4, 20)

    def test_intent_labels_are_a_snapshot(self):
        labels = {"app": "web"}
        strategy = Strategy()
        strategy.stamp(Operator(uid="op-1"))

        intent = Intent.from_strategy(strategy, Pod("default", labels, "p1", "node-a"))
        labels["app"] = "changed"

        assert intent.pod_labels == {"app": "web"}

    def test_intent_dict_round_trip(self):
        strategy = Strategy()
        strategy.stamp(Operator(uid="op-1"))
        intent = Intent.from_strategy(strategy, Pod("default", {"app": "web"}, "p1", "node-a"))
        intent.state = IntentState.SENT

        assert Intent.from_dict(intent.to_dict()) == intent

    def test_intent_filter(self):
        intent = Intent(strategy_id="s1", pod_id="p1", node_id="n1", namespace="default", creator_id="op-1")

        assert IntentFilter().matches(intent)
        assert IntentFilter(creator_ids=("op-1",), states=(IntentState.CREATED,)).matches(intent)
        assert not IntentFilter(strategy_ids=("s2",)).matches(intent)
        assert not IntentFilter(states=(IntentState.SENT,)).matches(intent)


class TestApiModels:
    def test_create_strategy_request_to_domain(self):
        request = CreateStrategyRequest(
            namespaces=["default", " ", "default", "staging"],
            label_selectors=[{"key": "app", "value": "web"}, {"key": "tier"}],
            command_regex="nginx",
        )

        strategy = request.to_domain()

        assert strategy.namespaces == ["default", "staging"]
        assert strategy.label_selectors == [LabelSelector("app", "web"), LabelSelector("tier", "")]
        assert strategy.id is None

    @pytest.mark.parametrize(
        "selector",
        [{"key": "app!", "value": "web"}, {"key": "!tier"}, {"key": "app", "value": "web,tier"}],
    )
    def test_create_strategy_request_rejects_selector_operators(self, selector):
        with pytest.raises(ValidationError):
            CreateStrategyRequest(label_selectors=[selector])

    def test_agent_intent_aliases(self):
        intent = AgentIntent.model_validate(
            {"podID": "p1", "nodeID": "n1", "k8sNamespace": "default", "executionTime": 5}
        )

        assert (intent.pod_id, intent.node_id, intent.namespace, intent.execution_time) == ("p1", "n1", "default", 5)

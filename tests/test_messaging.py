import pytest

from errors import NotFoundError, ValidationError
from store import REGISTRY


@pytest.fixture()
def agents(network):
    alpha, _ = network.registry.register("Alpha", capabilities=["research", "coding"])
    beta, _ = network.registry.register("Beta", capabilities=["research"])
    return alpha, beta


def _set_points(store, agent_id, points):
    with store.transaction(REGISTRY) as docs:
        docs[REGISTRY]["agents"][agent_id]["points"] = points


def test_send_resolves_recipient_by_name_case_insensitively(network, agents, store):
    alpha, beta = agents

    message = network.messages.send(alpha["id"], "bEtA", subject="hi", body="ping")

    assert message["to"] == beta["id"]
    assert message["from_name"] == "Alpha"
    assert message["type"] == "message"
    assert message["priority"] == "normal"
    registry_doc = store.load(REGISTRY)["agents"]
    assert registry_doc[alpha["id"]]["messages_sent"] == 1
    assert registry_doc[beta["id"]]["messages_received"] == 1


def test_cannot_message_yourself_by_id_or_name(network, agents):
    alpha, _ = agents
    with pytest.raises(ValidationError):
        network.messages.send(alpha["id"], alpha["id"])
    with pytest.raises(ValidationError):
        network.messages.send(alpha["id"], "alpha")


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"to": ""}, ValidationError),
        ({"to": 42}, ValidationError),
        ({"to": ["beta"]}, ValidationError),
        ({"to": "nobody"}, NotFoundError),
        ({"to": "Beta", "msg_type": "gossip"}, ValidationError),
        ({"to": "Beta", "priority": "critical"}, ValidationError),
    ],
)
def test_send_rejects_bad_input(network, agents, kwargs, error):
    alpha, _ = agents
    with pytest.raises(error):
        network.messages.send(alpha["id"], **kwargs)


def test_inbox_newest_first_with_filters(network, agents, clock):
    alpha, beta = agents
    network.messages.send(alpha["id"], beta["id"], subject="first")
    clock.advance(10)
    network.messages.send(alpha["id"], beta["id"], msg_type="request", subject="second")

    inbox = network.messages.inbox(beta["id"])
    assert [m["subject"] for m in inbox["messages"]] == ["second", "first"]
    assert inbox["unread"] == 2

    requests = network.messages.inbox(beta["id"], msg_type="request")
    assert requests["count"] == 1
    assert network.messages.inbox(beta["id"], limit=1)["messages"][0]["subject"] == "second"


def test_mark_read_is_idempotent(network, agents, clock):
    alpha, beta = agents
    message = network.messages.send(alpha["id"], beta["id"])

    first = network.messages.mark_read(beta["id"], message["id"])
    clock.advance(60)
    second = network.messages.mark_read(beta["id"], message["id"])

    assert first["read"] is True
    assert second["read_at"] == first["read_at"]
    assert network.messages.unread_count(beta["id"]) == 0
    assert network.messages.inbox(beta["id"], unread_only=True)["count"] == 0


def test_read_and_delete_are_scoped_to_own_inbox(network, agents):
    alpha, beta = agents
    message = network.messages.send(alpha["id"], beta["id"])

    with pytest.raises(NotFoundError):
        network.messages.mark_read(alpha["id"], message["id"])
    with pytest.raises(NotFoundError):
        network.messages.delete(alpha["id"], message["id"])

    network.messages.delete(beta["id"], message["id"])
    assert network.messages.inbox(beta["id"])["count"] == 0
    with pytest.raises(NotFoundError):
        network.messages.delete(beta["id"], message["id"])


def test_delegate_picks_highest_scoring_online_agent(network, agents, store):
    alpha, beta = agents
    gamma, _ = network.registry.register("Gamma", capabilities=["research"])
    _set_points(store, gamma["id"], 40)

    result = network.messages.delegate(alpha["id"], ["research"], body="dig into ETF flows")

    assert result["delegated_to"]["id"] == gamma["id"]
    assert result["candidates_considered"] == 2
    task = network.messages.inbox(gamma["id"])["messages"][0]
    assert task["type"] == "task"
    assert task["subject"] == "Delegated Task"
    assert task["data"]["required_capabilities"] == ["research"]
    assert "delegated_at" in task["data"]


def test_delegate_falls_back_to_busy_agents(network, agents):
    alpha, beta = agents
    network.registry.heartbeat(beta["id"], status="busy")

    result = network.messages.delegate(alpha["id"], ["research"])

    assert result["delegated_to"]["id"] == beta["id"]


def test_delegate_without_candidates(network, agents, clock):
    alpha, _ = agents

    with pytest.raises(NotFoundError) as exc:
        network.messages.delegate(alpha["id"], ["trading-execution"])
    assert exc.value.extra["required_capabilities"] == ["trading-execution"]

    clock.advance(500)
    with pytest.raises(NotFoundError):
        network.messages.delegate(alpha["id"], ["research"])

    with pytest.raises(ValidationError):
        network.messages.delegate(alpha["id"], "research")

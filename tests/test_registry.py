import threading

import pytest

from errors import AuthError, ConflictError, NotFoundError, ValidationError
from registry import (
    AgentRegistry,
    genesis_multiplier,
    genesis_tier,
    hash_api_key,
)
from store import MESSAGES, REGISTRY


@pytest.fixture()
def registry(store, clock):
    return AgentRegistry(store, clock=clock)


@pytest.mark.parametrize(
    "number, multiplier, tier",
    [
        (1, 4, "founding"),
        (10, 4, "founding"),
        (11, 3, "early"),
        (50, 3, "early"),
        (51, 2, "genesis"),
        (100, 2, "genesis"),
        (101, 1, "normal"),
    ],
)
def test_genesis_tier_boundaries(number, multiplier, tier):
    assert genesis_multiplier(number) == multiplier
    assert genesis_tier(number) == tier


def test_register_assigns_sequential_genesis_numbers(registry):
    first, _ = registry.register("alpha")
    second, _ = registry.register("beta")

    assert first["genesis_number"] == 1
    assert second["genesis_number"] == 2
    assert second["genesis_tier"] == "founding"


def test_concurrent_registrations_get_unique_genesis_numbers(registry, store):
    count = 12
    errors = []

    def worker(i):
        try:
            registry.register(f"agent-{i}")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert errors == []
    numbers = sorted(a["genesis_number"] for a in store.load(REGISTRY)["agents"].values())
    assert numbers == list(range(1, count + 1))


def test_register_stores_only_key_hash_and_creates_inbox(registry, store):
    agent, api_key = registry.register("alpha")

    assert api_key.startswith("sig_")
    assert len(api_key) == 4 + 64
    doc = store.load(REGISTRY)
    assert api_key not in doc["api_keys"]
    assert doc["api_keys"][hash_api_key(api_key)] == agent["id"]
    assert store.load(MESSAGES)[agent["id"]] == []


def test_duplicate_name_is_case_insensitive(registry):
    registry.register("Alpha")
    with pytest.raises(ConflictError) as exc:
        registry.register("ALPHA")
    assert exc.value.status_code == 409


@pytest.mark.parametrize("name", ["", "a", "x" * 51, None])
def test_register_rejects_bad_names(registry, name):
    with pytest.raises(ValidationError):
        registry.register(name)


def test_register_filters_unknown_capabilities(registry):
    agent, _ = registry.register("alpha", capabilities=["research", "telepathy", "coding"])
    assert agent["capabilities"] == ["research", "coding"]


def test_register_rejects_non_list_capabilities(registry):
    with pytest.raises(ValidationError):
        registry.register("alpha", capabilities="research")


def test_authenticate_distinguishes_missing_and_invalid_keys(registry):
    agent, api_key = registry.register("alpha")

    assert registry.authenticate(api_key)["id"] == agent["id"]
    with pytest.raises(AuthError) as missing:
        registry.authenticate("")
    assert missing.value.status_code == 401
    with pytest.raises(AuthError) as invalid:
        registry.authenticate("sig_" + "0" * 64)
    assert invalid.value.status_code == 403


def test_presence_decays_to_offline_after_timeout(registry, clock):
    agent, _ = registry.register("alpha")

    clock.advance(120)
    assert registry.get(agent["id"])["status"] == "online"
    clock.advance(1)
    assert registry.get(agent["id"])["status"] == "offline"

    registry.heartbeat(agent["id"])
    assert registry.get(agent["id"])["status"] == "online"


def test_heartbeat_sets_status_and_task(registry):
    agent, _ = registry.register("alpha")

    updated = registry.heartbeat(agent["id"], status="busy", current_task="market-501")

    assert updated["status"] == "busy"
    assert updated["current_task"] == "market-501"
    with pytest.raises(ValidationError):
        registry.heartbeat(agent["id"], status="sleeping")


def test_update_profile_applies_only_given_fields(registry, clock):
    agent, _ = registry.register("alpha", capabilities=["research"], metadata={"model": "a"})

    clock.advance(5)
    updated = registry.update_profile(agent["id"], {
        "description": "d" * 600,
        "metadata": {"region": "eu"},
        "capabilities": ["coding", "bogus"],
    })

    assert len(updated["description"]) == 500
    assert updated["metadata"] == {"model": "a", "region": "eu"}
    assert updated["capabilities"] == ["coding"]
    assert updated["wallet"] is None
    assert updated["updated_at"] > agent["created_at"]


def test_get_unknown_agent(registry):
    with pytest.raises(NotFoundError):
        registry.get("missing")


def test_search_filters_and_orders_by_points(registry, store, clock):
    a, _ = registry.register("alpha", capabilities=["research"], description="macro analyst")
    b, _ = registry.register("beta", capabilities=["research", "coding"])
    registry.register("gamma", capabilities=["coding"])
    with store.transaction(REGISTRY) as docs:
        docs[REGISTRY]["agents"][b["id"]]["points"] = 12

    result = registry.search(capability="research")
    assert result["total"] == 2
    assert [x["name"] for x in result["agents"]] == ["beta", "alpha"]
    assert "api_key" not in result["agents"][0]

    assert registry.search(text="MACRO")["agents"][0]["id"] == a["id"]

    clock.advance(300)
    assert registry.search(status="online")["total"] == 0
    assert registry.search(limit=1, offset=1)["agents"][0]["name"] == "alpha"


def test_match_requires_every_capability(registry):
    registry.register("alpha", capabilities=["research"])
    registry.register("beta", capabilities=["research", "coding"])

    matches = registry.match(["research", "coding"])
    assert [m["name"] for m in matches] == ["beta"]
    assert matches[0]["match_score"] == 1

    with pytest.raises(ValidationError):
        registry.match([])


def test_match_online_only_skips_stale_agents(registry, clock):
    registry.register("alpha", capabilities=["research"])
    clock.advance(500)

    assert registry.match(["research"]) == []
    assert len(registry.match(["research"], online_only=False)) == 1
    assert registry.online() == []

import random
from datetime import datetime, timezone

import pytest

from app import create_app
from markets import normalize_market
from network import AgentNetwork
from store import DocumentStore

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc).timestamp()

RAW_MARKETS = [
    {
        "id": "501",
        "question": "Will Bitcoin reach 100k by June?",
        "slug": "bitcoin-100k-june",
        "description": "Resolves YES if BTC trades above $100,000.",
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0.62", "0.38"]',
        "volumeNum": 125000,
        "liquidityNum": 40000,
        "endDate": "2026-06-30T00:00:00Z",
        "events": [{"slug": "bitcoin-price-june"}],
    },
    {
        "id": "502",
        "question": "Will Elon Musk tweet more than 500 times this week?",
        "slug": "elon-tweets-week",
        "description": "Counts posts on @elonmusk.",
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0.45", "0.55"]',
        "volumeNum": 80000,
        "liquidityNum": 12000,
        "endDate": "2026-03-17T00:00:00Z",
        "events": [],
    },
]

FEED_ITEMS = [
    {"title": "Bitcoin rallies", "link": "https://news.example/btc", "snippet": "BTC is up.",
     "published": "Tue, 10 Mar 2026 10:00:00 GMT"},
    {"title": "ETF inflows", "link": "https://news.example/etf", "snippet": "Inflows rise.",
     "published": "Tue, 10 Mar 2026 09:00:00 GMT"},
]


class FakeClock:
    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(tmp_path):
    return DocumentStore(tmp_path / "sigmine.db")


@pytest.fixture()
def network(store, clock):
    return AgentNetwork(
        store=store,
        clock=clock,
        fetch_markets=lambda: [normalize_market(m) for m in RAW_MARKETS],
        fetch_feed_items=lambda url: list(FEED_ITEMS),
        rng=random.Random(7),
    )


@pytest.fixture()
def client(network):
    app = create_app(network)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture()
def register(client):
    """Register an agent over HTTP; returns (agent_id, api_key)."""
    def _register(name, capabilities=None):
        resp = client.post("/agent/register", json={"name": name, "capabilities": capabilities or []})
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        return body["agent_id"], body["api_key"]
    return _register

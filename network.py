"""Wires every SigMine service onto one store and one clock."""

import config
from claims import ClaimLedger
from epoch import EpochClock
from markets import FeedTaskCache, MarketCache
from messaging import MessageQueue
from rate_limiter import RateLimiter
from registry import AgentRegistry
from rewards import RewardEngine
from store import DocumentStore
from timeutil import system_clock


class AgentNetwork:
    def __init__(self, store=None, clock=None, fetch_markets=None, fetch_feed_items=None, rng=None):
        self.clock = clock or system_clock
        self.store = store or DocumentStore(config.DB_PATH)
        self.epochs = EpochClock(clock=self.clock)
        self.rate_limiter = RateLimiter(self.store, clock=self.clock)
        self.registry = AgentRegistry(self.store, clock=self.clock)
        self.messages = MessageQueue(self.store, self.registry, clock=self.clock)
        self.markets = MarketCache(self.store, clock=self.clock, fetch_markets=fetch_markets,
                                   fetch_feed_items=fetch_feed_items, rng=rng)
        self.feed_tasks = FeedTaskCache(self.store, clock=self.clock,
                                        fetch_feed_items=fetch_feed_items, rng=rng)
        self.claims = ClaimLedger(self.store, self.rate_limiter, clock=self.clock)
        self.rewards = RewardEngine(self.store, self.registry, self.rate_limiter, self.epochs,
                                    market_cache=self.markets, clock=self.clock)

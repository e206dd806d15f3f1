"""Market and feed task sources.

Polymarket markets and RSS items are pulled from upstream, cached in the
store with a TTL, and turned into research tasks. Upstream failures never
fail a request: they are logged and the cache degrades to whatever data is
available (possibly none).
"""

import json
import logging
import random
import re
import urllib.request
import uuid
from xml.etree import ElementTree as ET

import config
from errors import NotFoundError, UpstreamError
from store import FEED_TASKS, MARKET_CACHE
from timeutil import system_clock, to_iso

logger = logging.getLogger("sigmine.markets")

USER_AGENT = "SigMine/0.3"
TASK_TTL_SECONDS = 3600

MAX_ACCOUNTS = 8
MAX_DATA_SOURCES = 5
MAX_FEEDS = 4
MAX_SEARCH_TERMS = 5
MAX_ARTICLE_FEEDS = 3
ARTICLES_PER_FEED = 3
ITEMS_PER_FEED = 5

TOPIC_SOURCES = {
    "crypto": {
        "keywords": ["crypto", "bitcoin", "btc", "ethereum", "eth", "solana", "sol", "defi", "nft"],
        "rss": [
            {"name": "CoinDesk", "url": "https://www.coindesk.com/arc/outboundfeeds/rss/", "category": "news"},
            {"name": "CoinTelegraph", "url": "https://cointelegraph.com/rss", "category": "news"},
            {"name": "The Block", "url": "https://www.theblock.co/rss.xml", "category": "news"},
        ],
        "twitter": ["@coindesk", "@whale_alert", "@WuBlockchain", "@lookonchain"],
        "data_sources": ["CoinGecko API", "DeFiLlama", "Glassnode"],
    },
    "politics_us": {
        "keywords": ["trump", "biden", "congress", "senate", "election", "democrat", "republican", "white house"],
        "rss": [
            {"name": "Politico", "url": "https://www.politico.com/rss/politics08.xml", "category": "politics"},
            {"name": "AP Politics", "url": "https://apnews.com/politics.rss", "category": "politics"},
        ],
        "twitter": ["@POTUS", "@AP_Politics", "@Nate_Cohn"],
        "data_sources": ["FiveThirtyEight", "RealClearPolitics", "PredictIt"],
    },
    "immigration": {
        "keywords": ["deport", "immigration", "ice", "border", "migrant", "visa"],
        "rss": [
            {"name": "Reuters US", "url": "https://www.reutersagency.com/feed/", "category": "news"},
        ],
        "twitter": ["@ICEgov", "@CBP", "@DHSgov"],
        "data_sources": ["ICE Annual Reports", "CBP Statistics", "USCIS Data"],
    },
    "tech": {
        "keywords": ["ai", "openai", "chatgpt", "google", "apple", "microsoft", "meta", "nvidia"],
        "rss": [
            {"name": "TechCrunch", "url": "https://techcrunch.com/feed/", "category": "tech"},
            {"name": "Ars Technica", "url": "https://feeds.arstechnica.com/arstechnica/index", "category": "tech"},
        ],
        "twitter": ["@OpenAI", "@sama", "@ylecun", "@nvidia"],
        "data_sources": ["Company earnings reports", "SEC filings", "App Store rankings"],
    },
    "geopolitics": {
        "keywords": ["ukraine", "russia", "china", "war", "nato", "putin", "zelensky", "taiwan"],
        "rss": [
            {"name": "Reuters World", "url": "https://www.reutersagency.com/feed/", "category": "world"},
            {"name": "BBC World", "url": "https://feeds.bbci.co.uk/news/world/rss.xml", "category": "world"},
        ],
        "twitter": ["@KyivIndependent", "@BBCWorld", "@Reuters"],
        "data_sources": ["ISW Reports", "UN Data", "Defense Ministry statements"],
    },
    "sports": {
        "keywords": ["nfl", "nba", "mlb", "super bowl", "world series", "championship", "playoffs"],
        "rss": [
            {"name": "ESPN", "url": "https://www.espn.com/espn/rss/news", "category": "sports"},
        ],
        "twitter": ["@espn", "@TheAthletic", "@SportsCenter"],
        "data_sources": ["ESPN Stats", "Team injury reports", "Vegas odds"],
    },
    "elon": {
        "keywords": ["elon", "musk", "tesla", "spacex", "doge", "x.com", "twitter"],
        "rss": [
            {"name": "TechCrunch", "url": "https://techcrunch.com/feed/", "category": "tech"},
            {"name": "Electrek", "url": "https://electrek.co/feed/", "category": "tech"},
        ],
        "twitter": ["@elonmusk", "@Tesla", "@SpaceX", "@WholeMarsBlog"],
        "data_sources": ["Tesla investor relations", "SEC filings", "Social Blade (tweet counts)"],
    },
}

_TAG_RE = re.compile(r"<[^>]+>")
_PUNCT_RE = re.compile(r"[^\w\s]")


# ── upstream providers ───────────────────────────────────────────────────

def _fetch(url, timeout):
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read()
    except (OSError, ValueError) as e:
        raise UpstreamError(f"Failed to fetch {url}: {e}") from e


def _json_list(raw, default):
    if isinstance(raw, list):
        return raw
    try:
        parsed = json.loads(raw or "")
    except (TypeError, ValueError):
        return default
    return parsed if isinstance(parsed, list) else default


def normalize_market(m):
    events = m.get("events") or []
    event_slug = events[0].get("slug") if events and isinstance(events[0], dict) else None
    return {
        "market_id": str(m.get("id")),
        "question": m.get("question") or "",
        "slug": m.get("slug") or "",
        "description": m.get("description") or "",
        "outcomes": _json_list(m.get("outcomes"), ["Yes", "No"]),
        "current_prices": _json_list(m.get("outcomePrices"), ["0.5", "0.5"]),
        "volume": m.get("volumeNum") or 0,
        "liquidity": m.get("liquidityNum") or 0,
        "end_date": m.get("endDate"),
        "url": f"https://polymarket.com/event/{event_slug or m.get('slug') or ''}",
        "platform": "polymarket",
    }


def fetch_polymarkets(timeout=None):
    """Open Polymarket markets. Raises UpstreamError on any failure."""
    raw = _fetch(config.POLYMARKET_MARKETS_URL, timeout or config.UPSTREAM_TIMEOUT_SECONDS)
    try:
        payload = json.loads(raw.decode())
    except ValueError as e:
        raise UpstreamError(f"Polymarket returned invalid JSON: {e}") from e
    if not isinstance(payload, list):
        raise UpstreamError("Polymarket returned an unexpected payload")
    return [normalize_market(m) for m in payload if isinstance(m, dict) and m.get("id") is not None]


def _text(node, *tags):
    for tag in tags:
        child = node.find(tag)
        if child is not None:
            if child.text and child.text.strip():
                return child.text.strip()
            href = child.get("href")
            if href:
                return href
    return ""


def parse_feed(raw):
    """Items of an RSS 2.0 or Atom document as plain dicts."""
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        raise UpstreamError(f"Unparseable feed: {e}") from e

    atom = "{http://www.w3.org/2005/Atom}"
    nodes = root.findall(".//item") or root.findall(f".//{atom}entry")
    items = []
    for node in nodes:
        content = _text(node, "description", f"{atom}summary", f"{atom}content")
        items.append({
            "title": _text(node, "title", f"{atom}title"),
            "link": _text(node, "link", f"{atom}link"),
            "snippet": _TAG_RE.sub("", content).strip(),
            "published": _text(node, "pubDate", f"{atom}published", f"{atom}updated") or None,
        })
    return items


def fetch_feed(url, timeout=None):
    return parse_feed(_fetch(url, timeout or config.UPSTREAM_TIMEOUT_SECONDS))


# ── topics & research bundles ────────────────────────────────────────────

def detect_topics(question):
    q = question.lower()
    topics = [topic for topic, cfg in TOPIC_SOURCES.items()
              if any(kw in q for kw in cfg["keywords"])]
    return topics or ["general"]


def _dedupe(values):
    seen = set()
    out = []
    for v in values:
        key = json.dumps(v, sort_keys=True) if isinstance(v, dict) else v
        if key not in seen:
            seen.add(key)
            out.append(v)
    return out


def search_terms(question):
    words = _PUNCT_RE.sub("", question).split()
    return [w for w in words if len(w) > 3][:MAX_SEARCH_TERMS]


def build_research_bundle(market, topics):
    accounts, data_sources, feeds = [], [], []
    for topic in topics:
        cfg = TOPIC_SOURCES.get(topic)
        if not cfg:
            continue
        accounts.extend(cfg["twitter"])
        data_sources.extend(cfg["data_sources"])
        feeds.extend({"name": r["name"], "url": r["url"]} for r in cfg["rss"])

    return {
        "topics": topics,
        "twitter_accounts": _dedupe(accounts)[:MAX_ACCOUNTS],
        "twitter_search_terms": search_terms(market["question"]),
        "data_sources": _dedupe(data_sources)[:MAX_DATA_SOURCES],
        "rss_feeds": _dedupe(feeds)[:MAX_FEEDS],
    }


def _price(prices, idx):
    try:
        return float(prices[idx])
    except (IndexError, TypeError, ValueError):
        return 0.5


def market_odds(market):
    outcomes = market["outcomes"] or ["Yes", "No"]
    return {outcome: _price(market["current_prices"], i) for i, outcome in enumerate(outcomes[:2])}


def task_instructions(market):
    outcomes = market["outcomes"] or ["Yes", "No"]
    first = _price(market["current_prices"], 0) * 100
    second = _price(market["current_prices"], 1) * 100
    return f"""
TASK: Research this prediction market and submit a signal.

MARKET: "{market['question']}"
CURRENT ODDS: {outcomes[0]} {first:.1f}% / {outcomes[-1]} {second:.1f}%

RESEARCH STEPS:
1. Review the bundled RSS articles below
2. Check the suggested X/Twitter accounts for recent posts
3. Consult data sources if applicable
4. Form your opinion: Does evidence support YES, NO, or NEUTRAL?

SUBMIT via POST /signal/market with:
- market_id: "{market['market_id']}"
- direction: "supports_yes" | "supports_no" | "neutral"
- confidence: 0.0 to 1.0
- signal: Your key finding (what you discovered)
- sources: List of sources you used
- reasoning: Your full analysis
""".strip()


# ── caches ───────────────────────────────────────────────────────────────

class MarketCache:
    """Polymarket snapshot refreshed lazily once older than the TTL."""

    def __init__(self, store, clock=None, ttl_seconds=None, fetch_markets=None,
                 fetch_feed_items=None, rng=None):
        self.store = store
        self.clock = clock or system_clock
        self.ttl = ttl_seconds or config.MARKET_CACHE_TTL_SECONDS
        self.fetch_markets = fetch_markets or fetch_polymarkets
        self.fetch_feed_items = fetch_feed_items or fetch_feed
        self.rng = rng or random.Random()

    def markets(self):
        # Upstream is called without holding the store lock; readers keep
        # seeing the previous snapshot until the new one is written.
        now = self.clock()
        cache = self.store.load(MARKET_CACHE)
        if now - cache["last_fetch"] <= self.ttl and cache["markets"]:
            return list(cache["markets"])

        logger.info("Fetching fresh markets from Polymarket...")
        try:
            markets = self.fetch_markets()
        except UpstreamError as e:
            logger.warning("Polymarket fetch failed: %s", e)
            markets = []
        with self.store.transaction(MARKET_CACHE) as docs:
            docs[MARKET_CACHE]["markets"] = markets
            docs[MARKET_CACHE]["last_fetch"] = now
        logger.info("Cached %d markets", len(markets))
        return list(markets)

    def cached(self):
        """Current snapshot without triggering a refresh."""
        return self.store.load(MARKET_CACHE)

    def find(self, market_id):
        for market in self.cached()["markets"]:
            if market["market_id"] == market_id:
                return market
        return None

    def listing(self):
        self.markets()
        cache = self.cached()
        return {
            "count": len(cache["markets"]),
            "last_updated": to_iso(cache["last_fetch"]),
            "markets": [{
                "id": m["market_id"],
                "platform": m["platform"],
                "question": m["question"],
                "odds": market_odds(m),
                "volume": m["volume"],
                "url": m["url"],
            } for m in cache["markets"]],
        }

    def relevant_articles(self, topics):
        feeds = []
        for topic in topics:
            cfg = TOPIC_SOURCES.get(topic)
            if cfg:
                feeds.extend(cfg["rss"])
        articles = []
        for feed in _dedupe(feeds)[:MAX_ARTICLE_FEEDS]:
            try:
                items = self.fetch_feed_items(feed["url"])
            except UpstreamError as e:
                logger.warning("RSS fetch failed for %s: %s", feed["name"], e)
                continue
            for item in items[:ARTICLES_PER_FEED]:
                articles.append({
                    "source": feed["name"],
                    "title": item["title"],
                    "url": item["link"],
                    "snippet": item["snippet"][:300],
                    "published": item["published"],
                })
        return articles

    def market_task(self, market_id=None):
        """A market-grounded research task with its research bundle."""
        markets = self.markets()
        if not markets:
            raise NotFoundError("No markets available")
        if market_id:
            market = next((m for m in markets if m["market_id"] == market_id), None)
            if not market:
                raise NotFoundError("Market not found")
        else:
            market = self.rng.choice(markets)

        topics = detect_topics(market["question"])
        bundle = build_research_bundle(market, topics)
        now = self.clock()
        return {
            "task_id": str(uuid.uuid4()),
            "type": "market_signal",
            "market": {
                "id": market["market_id"],
                "platform": market["platform"],
                "question": market["question"],
                "description": market["description"][:500],
                "outcomes": market["outcomes"],
                "current_odds": market_odds(market),
                "volume_usd": market["volume"],
                "resolves_at": market["end_date"],
                "url": market["url"],
            },
            "research": {
                "detected_topics": topics,
                "x_research": {
                    "accounts_to_check": bundle["twitter_accounts"],
                    "search_terms": bundle["twitter_search_terms"],
                    "instructions": "Search these accounts and terms for recent relevant posts",
                },
                "rss_articles": self.relevant_articles(topics),
                "data_sources": bundle["data_sources"],
                "rss_feeds": bundle["rss_feeds"],
            },
            "instructions": task_instructions(market),
            "created_at": to_iso(now),
            "expires_at": to_iso(now + TASK_TTL_SECONDS),
        }


class FeedTaskCache:
    """Legacy news tasks built from the configured RSS feeds."""

    def __init__(self, store, clock=None, feeds=None, ttl_seconds=None,
                 fetch_feed_items=None, rng=None):
        self.store = store
        self.clock = clock or system_clock
        self.feeds = feeds if feeds is not None else config.FEEDS
        self.ttl = ttl_seconds or config.FEED_CACHE_TTL_SECONDS
        self.fetch_feed_items = fetch_feed_items or fetch_feed
        self.rng = rng or random.Random()

    def _fetch_all(self):
        logger.info("Fetching RSS feeds...")
        tasks = []
        now_iso = to_iso(self.clock())
        for feed in self.feeds:
            try:
                items = self.fetch_feed_items(feed["url"])[:ITEMS_PER_FEED]
            except UpstreamError as e:
                logger.warning("%s: %s", feed["name"], e)
                continue
            for item in items:
                tasks.append({
                    "task_id": str(uuid.uuid4()),
                    "source_url": item["link"],
                    "source_type": "rss",
                    "source_name": feed["name"],
                    "title": item["title"],
                    "content_snippet": item["snippet"][:500],
                    "published": item["published"],
                    "category_hint": feed.get("category"),
                    "created_at": now_iso,
                })
            logger.info("%s: %d items", feed["name"], len(items))
        return tasks

    def random_task(self):
        now = self.clock()
        cache = self.store.load(FEED_TASKS)
        tasks = cache["tasks"]
        if now - cache["last_fetch"] > self.ttl or not tasks:
            tasks = self._fetch_all()
            with self.store.transaction(FEED_TASKS) as docs:
                docs[FEED_TASKS]["tasks"] = tasks
                docs[FEED_TASKS]["last_fetch"] = now
        if not tasks:
            raise NotFoundError("No tasks available")
        return self.rng.choice(tasks)

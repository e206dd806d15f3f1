"""Signal submission and the reward engine.

A market signal is scored as::

    raw   = base + source_bonus + confidence_bonus + first_signal_bonus + reasoning_bonus
    final = round_half_up(raw * genesis_multiplier * streak_multiplier, 1)

Every side effect of a submission (signal append, streak, legacy stats and
registry totals) is committed in one store transaction over ``signals``,
``registry`` and ``agent_stats``. Points only ever reach an agent through
``_credit`` so the two stat tables cannot drift apart.
"""

import logging
import urllib.parse
import uuid
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

import config
from errors import ConflictError, NotFoundError, ValidationError
from registry import AGENT_CAPABILITIES, AgentStatus
from store import AGENT_STATS, MESSAGES, REGISTRY, SIGNALS
from timeutil import previous_utc_date, system_clock, to_iso, utc_date

logger = logging.getLogger("sigmine.rewards")

VERSION = "0.3.0"

BASE_POINTS = 2
SOURCE_BONUS_PER_SOURCE = 0.5
SOURCE_BONUS_CAP = 2
CONFIDENCE_THRESHOLD = 0.7
CONFIDENCE_BONUS = 1
FIRST_SIGNAL_BONUS = 2
REASONING_MIN_CHARS = 100
REASONING_BONUS = 0.5
MIN_SIGNAL_CHARS = 10
LEGACY_SIGNAL_POINTS = 1
SHARE_BONUS = 1

# (streak strictly greater than, multiplier), checked in order
STREAK_TIERS = [
    (30, 2),
    (14, 1.5),
    (7, 1.2),
]

LEGACY_REQUIRED_FIELDS = [
    "source_url", "title", "main_claim", "entities",
    "sentiment", "category", "summary", "agent_id",
]
SENTIMENTS = ("positive", "neutral", "negative")

LEADERBOARD_SIZE = 20
RECENT_SIGNALS = 50

REWARD_SYSTEM = {
    "genesis_tiers": {
        "founding": "1-10 (4x)",
        "early": "11-50 (3x)",
        "genesis": "51-100 (2x)",
        "normal": "101+ (1x)",
    },
    "streak_multipliers": {
        "week1": "1-7d (1x)",
        "week2": "8-14d (1.2x)",
        "month": "15-30d (1.5x)",
        "veteran": "31+d (2x)",
    },
    "max_raw_points": 7.5,
    "max_points_per_signal": 60,
}


class Direction(Enum):
    SUPPORTS_YES = "supports_yes"
    SUPPORTS_NO = "supports_no"
    NEUTRAL = "neutral"


def streak_multiplier(streak):
    for floor, multiplier in STREAK_TIERS:
        if streak > floor:
            return multiplier
    return 1


def update_streak(agent, now):
    """Advance ``agent``'s daily streak in place and return it.

    Same UTC day keeps the streak, the next day extends it, anything else
    starts over at 1.
    """
    today = utc_date(now)
    last = agent.get("last_signal_date")
    if not last:
        agent["streak"] = 1
    elif last == today:
        agent["streak"] = agent.get("streak") or 1
    elif last == previous_utc_date(now):
        agent["streak"] = agent.get("streak", 0) + 1
    else:
        agent["streak"] = 1
    agent["last_signal_date"] = today
    return agent["streak"]


def round_points(value):
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def score_market_signal(sources, confidence, reasoning, is_first):
    """Raw (pre-multiplier) components of a market signal's reward."""
    source_bonus = min(SOURCE_BONUS_PER_SOURCE * len(sources), SOURCE_BONUS_CAP)
    confidence_bonus = CONFIDENCE_BONUS if confidence > CONFIDENCE_THRESHOLD else 0
    first_bonus = FIRST_SIGNAL_BONUS if is_first else 0
    reasoning_bonus = REASONING_BONUS if len(reasoning) > REASONING_MIN_CHARS else 0
    return {
        "base": BASE_POINTS,
        "source_bonus": source_bonus,
        "confidence_bonus": confidence_bonus,
        "first_signal_bonus": first_bonus,
        "reasoning_bonus": reasoning_bonus,
        "raw_points": BASE_POINTS + source_bonus + confidence_bonus + first_bonus + reasoning_bonus,
    }


def _credit(docs, agent_id, points, now, signal_count=1):
    """Add points to both the legacy stats table and the registry record."""
    now_iso = to_iso(now)
    stats = docs[AGENT_STATS].setdefault(
        agent_id, {"points": 0, "signals": 0, "first_seen": now_iso})
    stats["points"] = round_points(stats["points"] + points)
    stats["signals"] += signal_count
    if signal_count:
        stats["last_signal"] = now_iso

    agent = docs[REGISTRY]["agents"].get(agent_id)
    if agent:
        agent["points"] = round_points(agent["points"] + points)
        agent["signals"] += signal_count
        if signal_count:
            agent["last_signal"] = now_iso


class RewardEngine:
    def __init__(self, store, registry, rate_limiter, epoch_clock, market_cache=None, clock=None):
        self.store = store
        self.registry = registry
        self.rate_limiter = rate_limiter
        self.epoch_clock = epoch_clock
        self.market_cache = market_cache
        self.clock = clock or system_clock

    # ── submission ───────────────────────────────────────────────────────

    def submit_market_signal(self, payload, agent_id=None):
        agent_id = agent_id or payload.get("agent_id")
        if agent_id:
            self.rate_limiter.check(agent_id, "signal")

        market_id = payload.get("market_id")
        if not market_id:
            raise ValidationError("market_id required")
        if not isinstance(market_id, str):
            raise ValidationError("market_id must be a string")
        try:
            direction = Direction(payload.get("direction"))
        except ValueError:
            raise ValidationError("direction must be: supports_yes, supports_no, or neutral") from None
        confidence = payload.get("confidence")
        if not _is_number(confidence) or confidence < 0 or confidence > 1:
            raise ValidationError("confidence must be 0-1")
        text = payload.get("signal")
        if not isinstance(text, str) or len(text) < MIN_SIGNAL_CHARS:
            raise ValidationError(f"signal must be at least {MIN_SIGNAL_CHARS} chars")
        if not agent_id:
            raise ValidationError("agent_id required (or use API key)")
        if not isinstance(agent_id, str):
            raise ValidationError("agent_id must be a string")

        sources = payload.get("sources") or []
        if not isinstance(sources, list):
            raise ValidationError("sources must be an array")
        reasoning = payload.get("reasoning") or ""
        if not isinstance(reasoning, str):
            raise ValidationError("reasoning must be a string")

        epoch = self.epoch_clock.current()
        market = self.market_cache.find(market_id) if self.market_cache else None

        with self.store.transaction(SIGNALS, REGISTRY, AGENT_STATS) as docs:
            signals = docs[SIGNALS]
            existing = next((s for s in signals
                             if s.get("agent_id") == agent_id and s.get("market_id") == market_id), None)
            if existing:
                raise ConflictError(
                    "Already signaled this market",
                    message="You can only submit one signal per market",
                    existing_signal_id=existing["signal_id"],
                )

            now = self.clock()
            is_first = not any(s.get("market_id") == market_id for s in signals)
            breakdown = score_market_signal(sources, confidence, reasoning, is_first)

            agent = docs[REGISTRY]["agents"].get(agent_id)
            if agent:
                genesis_mult = agent.get("genesis_multiplier") or 1
                streak = update_streak(agent, now)
            else:
                genesis_mult = 1
                streak = 0
            streak_mult = streak_multiplier(streak)

            points = round_points(breakdown["raw_points"] * genesis_mult * streak_mult)
            breakdown.update({
                "genesis_multiplier": genesis_mult,
                "streak_multiplier": streak_mult,
                "streak_days": streak,
            })

            entry = {
                "signal_id": str(uuid.uuid4()),
                "epoch_id": epoch["id"],
                "type": "market_signal",
                "market_id": market_id,
                "market_url": market["url"] if market else None,
                "direction": direction.value,
                "confidence": confidence,
                "signal": text,
                "sources": sources,
                "reasoning": reasoning,
                "agent_id": agent_id,
                "agent_name": agent["name"] if agent else "unknown",
                "submitted_at": to_iso(now),
                "points": points,
                "points_breakdown": breakdown,
                "is_first_signal": is_first,
                "resolution_status": "pending",
            }
            signals.append(entry)
            _credit(docs, agent_id, points, now)

        logger.info("Market signal: %s | %s | %s pts (%sx genesis, %sx streak)",
                    entry["agent_name"] if agent else agent_id, direction.value,
                    points, genesis_mult, streak_mult)
        return entry

    def submit_legacy_signal(self, payload, agent_id=None):
        """News signal worth a flat point. No duplicate check, no rate limit."""
        signal = dict(payload)
        if agent_id:
            signal["agent_id"] = agent_id
        for field in LEGACY_REQUIRED_FIELDS:
            if not signal.get(field):
                raise ValidationError(f"Missing field: {field}")
        if not isinstance(signal["agent_id"], str):
            raise ValidationError("agent_id must be a string")
        if signal["sentiment"] not in SENTIMENTS:
            raise ValidationError("Invalid sentiment")

        epoch = self.epoch_clock.current()
        with self.store.transaction(SIGNALS, REGISTRY, AGENT_STATS) as docs:
            now = self.clock()
            entry = {
                **signal,
                "signal_id": str(uuid.uuid4()),
                "epoch_id": epoch["id"],
                "type": "news_signal",
                "submitted_at": to_iso(now),
                "points": LEGACY_SIGNAL_POINTS,
            }
            docs[SIGNALS].append(entry)
            _credit(docs, signal["agent_id"], LEGACY_SIGNAL_POINTS, now)

        logger.info("Signal from %s: %s", signal["agent_id"], str(signal["title"])[:50])
        return entry

    # ── share bonus ──────────────────────────────────────────────────────

    def share_tweet(self):
        text = (
            "Just joined SigMine, a signal mining pool where AI agents research "
            "prediction markets and earn points!\n\n"
            "Mine signals from @Polymarket\n"
            "Earn up to 60 pts per signal\n"
            "Genesis miners get up to 4x multiplier\n\n"
            f"Join the agent economy: {config.PUBLIC_JOIN_URL}\n\n"
            "#AIAgents #Polymarket #SigMine"
        )
        return {
            "tweet_text": text,
            "tweet_url": "https://twitter.com/intent/tweet?text=" + urllib.parse.quote(text, safe=""),
            "bonus": f"+{SHARE_BONUS} point (one-time)",
            "instructions": "Post this tweet, then call POST /share/claim with your tweet_url "
                            f"to earn +{SHARE_BONUS} point!",
        }

    def claim_share_bonus(self, agent_id, tweet_url=None, tweet_id=None):
        if not tweet_url and not tweet_id:
            raise ValidationError("Provide tweet_url or tweet_id as proof of sharing")

        with self.store.transaction(REGISTRY, AGENT_STATS) as docs:
            agent = docs[REGISTRY]["agents"].get(agent_id)
            if not agent:
                raise NotFoundError("Agent not found")
            if agent.get("share_bonus_claimed"):
                raise ConflictError("Share bonus already claimed",
                                    claimed_at=agent.get("share_bonus_claimed_at"))

            now = self.clock()
            agent["share_bonus_claimed"] = True
            agent["share_bonus_claimed_at"] = to_iso(now)
            agent["share_tweet"] = tweet_url or tweet_id
            _credit(docs, agent_id, SHARE_BONUS, now, signal_count=0)
            total = agent["points"]

        logger.info("Share bonus claimed: %s (+%d pt)", agent["name"], SHARE_BONUS)
        return {"points_awarded": SHARE_BONUS, "total_points": total}

    # ── read side ────────────────────────────────────────────────────────

    def leaderboard(self, limit=LEADERBOARD_SIZE):
        agents = {a["id"]: a for a in self.registry.all_agents()}
        merged = dict(self.store.load(AGENT_STATS))
        for agent_id, agent in agents.items():
            if agent_id not in merged:
                merged[agent_id] = {"points": agent["points"], "signals": agent["signals"],
                                    "first_seen": agent["created_at"]}

        rows = [{
            "agent_id": agent_id,
            "name": agents[agent_id]["name"] if agent_id in agents else agent_id,
            "points": data.get("points") or 0,
            "signals": data.get("signals") or 0,
            "status": agents[agent_id]["status"] if agent_id in agents else "unknown",
        } for agent_id, data in merged.items()]
        rows.sort(key=lambda r: r["points"], reverse=True)
        return rows[:limit]

    def recent_signals(self, limit=RECENT_SIGNALS):
        signals = self.store.load(SIGNALS)
        names = {a_id: a["name"] for a_id, a in self.store.load(REGISTRY)["agents"].items()}
        recent = list(reversed(signals[-limit:])) if limit else []
        out = []
        for s in recent:
            agent_id = str(s.get("agent_id") or "")
            out.append({**s, "agent_name": names.get(agent_id) or agent_id[:12] or "unknown"})
        return out

    def stats(self):
        signals = self.store.load(SIGNALS)
        agents = self.registry.all_agents()
        total_agents = len(agents) or len(self.store.load(AGENT_STATS))
        online = sum(1 for a in agents if a["status"] == AgentStatus.ONLINE.value)
        total_messages = sum(len(inbox) for inbox in self.store.load(MESSAGES).values())
        today = utc_date(self.clock())
        signals_today = sum(1 for s in signals if str(s.get("submitted_at", "")).startswith(today))

        return {
            "version": VERSION,
            "epoch": self.epoch_clock.describe(),
            "total_signals": len(signals),
            "signals_today": signals_today,
            "total_agents": total_agents,
            "online_agents": online,
            "total_messages": total_messages,
            "capabilities": len(AGENT_CAPABILITIES),
            "reward_system": REWARD_SYSTEM,
        }

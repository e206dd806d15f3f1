"""Agent registry: identity, API keys, presence and discovery.

Agents live in the ``registry`` document as ``{"agents": {id: record},
"api_keys": {sha256(key): id}}``. Only the hash of an API key is stored; the
raw key is returned once, at registration.

Presence is never swept in the background. ``status`` is recomputed from
``last_seen`` on every read, so a stale agent reads as offline whatever its
stored status says.
"""

import hashlib
import logging
import secrets
import uuid
from enum import Enum

import config
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from store import MESSAGES, REGISTRY
from timeutil import parse_iso, system_clock, to_iso

logger = logging.getLogger("sigmine.registry")

NAME_MIN_LEN = 2
NAME_MAX_LEN = 50
DESCRIPTION_MAX_LEN = 500

AGENT_CAPABILITIES = {
    "signal-analysis": "Analyze and extract signals from data sources",
    "market-data": "Process market data, prices, and trading info",
    "sentiment-analysis": "Analyze sentiment from text and social media",
    "on-chain-tracking": "Track blockchain transactions and wallets",
    "news-aggregation": "Aggregate and summarize news from multiple sources",
    "trading-execution": "Execute trades on exchanges or protocols",
    "risk-assessment": "Assess and quantify risk factors",
    "portfolio-management": "Manage and optimize portfolios",
    "social-monitoring": "Monitor social media channels",
    "research": "Conduct deep research and analysis",
    "coding": "Write and execute code",
    "data-extraction": "Extract structured data from sources",
    "communication": "Handle communication and messaging tasks",
}

# (max genesis number, multiplier, tier name), checked in order
GENESIS_TIERS = [
    (10, 4, "founding"),
    (50, 3, "early"),
    (100, 2, "genesis"),
]
NORMAL_TIER = (1, "normal")
GENESIS_CUTOFF = 100


class AgentStatus(Enum):
    ONLINE = "online"
    BUSY = "busy"
    OFFLINE = "offline"


def genesis_multiplier(genesis_number):
    for max_number, multiplier, _ in GENESIS_TIERS:
        if genesis_number <= max_number:
            return multiplier
    return NORMAL_TIER[0]


def genesis_tier(genesis_number):
    for max_number, _, tier in GENESIS_TIERS:
        if genesis_number <= max_number:
            return tier
    return NORMAL_TIER[1]


def generate_api_key():
    """Return a fresh raw API key. Only its hash is ever persisted."""
    return "sig_" + secrets.token_hex(32)


def hash_api_key(raw_key):
    return hashlib.sha256(raw_key.encode()).hexdigest()


def filter_capabilities(capabilities):
    """Keep known capabilities, in order, silently dropping the rest."""
    return [c for c in capabilities if isinstance(c, str) and c in AGENT_CAPABILITIES]


def parse_status(value):
    try:
        return AgentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AgentStatus)
        raise ValidationError(f"status must be one of: {allowed}") from None


def find_by_name(registry_doc, name):
    lowered = name.lower()
    for agent in registry_doc["agents"].values():
        if agent["name"].lower() == lowered:
            return agent
    return None


def public_view(agent):
    return {
        "id": agent["id"],
        "name": agent["name"],
        "capabilities": agent["capabilities"],
        "description": agent["description"],
        "status": agent["status"],
        "points": agent["points"],
        "signals": agent["signals"],
        "created_at": agent["created_at"],
        "last_seen": agent["last_seen"],
    }


def detail_view(agent):
    view = public_view(agent)
    view.update({
        "messages_sent": agent.get("messages_sent", 0),
        "messages_received": agent.get("messages_received", 0),
        "genesis_number": agent["genesis_number"],
        "genesis_tier": agent["genesis_tier"],
        "streak": agent.get("streak", 0),
    })
    return view


def private_view(agent):
    view = dict(agent)
    view["api_key"] = "[hidden]"
    return view


class AgentRegistry:
    def __init__(self, store, clock=None, heartbeat_timeout=None):
        self.store = store
        self.clock = clock or system_clock
        self.heartbeat_timeout = heartbeat_timeout or config.HEARTBEAT_TIMEOUT_SECONDS

    # ── presence ─────────────────────────────────────────────────────────

    def apply_presence(self, agent, now=None):
        """Return a copy of ``agent`` with status derived from last_seen."""
        now = self.clock() if now is None else now
        view = dict(agent)
        last_seen = parse_iso(agent.get("last_seen"))
        if last_seen is None or now - last_seen > self.heartbeat_timeout:
            view["status"] = AgentStatus.OFFLINE.value
        return view

    def all_agents(self):
        """Every agent, presence applied, in registration order."""
        doc = self.store.load(REGISTRY)
        now = self.clock()
        return [self.apply_presence(a, now) for a in doc["agents"].values()]

    # ── lifecycle ────────────────────────────────────────────────────────

    def register(self, name, wallet=None, capabilities=None, description=None, metadata=None):
        """Create an agent. Returns ``(agent, raw_api_key)``."""
        name = name.strip() if isinstance(name, str) else ""
        if len(name) < NAME_MIN_LEN or len(name) > NAME_MAX_LEN:
            raise ValidationError(f"Name required ({NAME_MIN_LEN}-{NAME_MAX_LEN} chars)")
        if capabilities is not None and not isinstance(capabilities, list):
            raise ValidationError("Capabilities must be an array")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")

        api_key = generate_api_key()
        with self.store.transaction(REGISTRY, MESSAGES) as docs:
            registry = docs[REGISTRY]
            if find_by_name(registry, name):
                raise ConflictError("Agent name already registered")

            now_iso = to_iso(self.clock())
            number = len(registry["agents"]) + 1
            agent = {
                "id": str(uuid.uuid4()),
                "name": name,
                "wallet": wallet or None,
                "capabilities": filter_capabilities(capabilities or []),
                "description": (description or "")[:DESCRIPTION_MAX_LEN],
                "metadata": metadata or {},
                "status": AgentStatus.ONLINE.value,
                "current_task": None,
                "created_at": now_iso,
                "last_seen": now_iso,
                "points": 0,
                "signals": 0,
                "messages_sent": 0,
                "messages_received": 0,
                "genesis_number": number,
                "genesis_tier": genesis_tier(number),
                "genesis_multiplier": genesis_multiplier(number),
                "streak": 0,
                "last_signal_date": None,
                "last_signal": None,
                "accuracy": {"correct": 0, "total": 0},
                "share_bonus_claimed": False,
                "share_bonus_claimed_at": None,
            }
            registry["agents"][agent["id"]] = agent
            registry["api_keys"][hash_api_key(api_key)] = agent["id"]
            docs[MESSAGES].setdefault(agent["id"], [])

        logger.info("Agent registered: %s #%d (%s tier, %dx)",
                    name, number, agent["genesis_tier"], agent["genesis_multiplier"])
        return agent, api_key

    def authenticate(self, api_key):
        if not api_key:
            raise AuthError("Missing API key. Include X-API-Key header.", status_code=401)
        doc = self.store.load(REGISTRY)
        agent_id = doc["api_keys"].get(hash_api_key(api_key))
        agent = doc["agents"].get(agent_id) if agent_id else None
        if not agent:
            raise AuthError("Invalid API key", status_code=403)
        return self.apply_presence(agent)

    def get(self, agent_id):
        agent = self.store.load(REGISTRY)["agents"].get(agent_id)
        if not agent:
            raise NotFoundError("Agent not found")
        return self.apply_presence(agent)

    def heartbeat(self, agent_id, status=None, current_task=None):
        new_status = parse_status(status) if status else AgentStatus.ONLINE
        with self.store.transaction(REGISTRY) as docs:
            agent = docs[REGISTRY]["agents"].get(agent_id)
            if not agent:
                raise NotFoundError("Agent not found")
            agent["last_seen"] = to_iso(self.clock())
            agent["status"] = new_status.value
            if current_task:
                agent["current_task"] = current_task
            return dict(agent)

    def update_profile(self, agent_id, patch):
        """Apply only the fields present in ``patch``."""
        with self.store.transaction(REGISTRY) as docs:
            agent = docs[REGISTRY]["agents"].get(agent_id)
            if not agent:
                raise NotFoundError("Agent not found")

            capabilities = patch.get("capabilities")
            if capabilities:
                if not isinstance(capabilities, list):
                    raise ValidationError("Capabilities must be an array")
                agent["capabilities"] = filter_capabilities(capabilities)
            if patch.get("description") is not None:
                agent["description"] = str(patch["description"])[:DESCRIPTION_MAX_LEN]
            metadata = patch.get("metadata")
            if metadata:
                if not isinstance(metadata, dict):
                    raise ValidationError("metadata must be an object")
                agent["metadata"] = {**agent.get("metadata", {}), **metadata}
            if patch.get("wallet"):
                agent["wallet"] = patch["wallet"]

            agent["updated_at"] = to_iso(self.clock())
            return self.apply_presence(agent)

    # ── discovery ────────────────────────────────────────────────────────

    def search(self, status=None, capability=None, text=None, limit=50, offset=0):
        agents = self.all_agents()
        if status:
            agents = [a for a in agents if a["status"] == status]
        if capability:
            agents = [a for a in agents if capability in a["capabilities"]]
        if text:
            needle = text.lower()
            agents = [a for a in agents
                      if needle in a["name"].lower() or needle in (a.get("description") or "").lower()]

        agents.sort(key=lambda a: a["points"], reverse=True)
        total = len(agents)
        page = agents[offset:offset + limit]
        return {
            "total": total,
            "limit": limit,
            "offset": offset,
            "agents": [public_view(a) for a in page],
        }

    def online(self):
        live = (AgentStatus.ONLINE.value, AgentStatus.BUSY.value)
        agents = [a for a in self.all_agents() if a["status"] in live]
        return [{
            "id": a["id"],
            "name": a["name"],
            "capabilities": a["capabilities"],
            "status": a["status"],
            "last_seen": a["last_seen"],
        } for a in agents]

    def match(self, required, online_only=True):
        """Agents holding every capability in ``required``, best first."""
        required = [c for c in (required or []) if c]
        if not required:
            raise ValidationError("Provide capability or capabilities param")

        agents = self.all_agents()
        if online_only:
            live = (AgentStatus.ONLINE.value, AgentStatus.BUSY.value)
            agents = [a for a in agents if a["status"] in live]
        agents = [a for a in agents if all(c in a["capabilities"] for c in required)]
        agents.sort(key=lambda a: a["points"], reverse=True)

        return [{
            "id": a["id"],
            "name": a["name"],
            "capabilities": a["capabilities"],
            "description": a["description"],
            "status": a["status"],
            "points": a["points"],
            "match_score": sum(1 for c in required if c in a["capabilities"]) / len(required),
        } for a in agents]

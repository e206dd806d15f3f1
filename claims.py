"""Exclusive, expiring claims binding one market task to one agent.

The ``claims`` document holds the live claim per market plus an append-only
history of every transition. Expiry is evaluated when a claim is read; an
expired claim simply reads as available.
"""

import logging

import config
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from store import CLAIMS
from timeutil import parse_iso, system_clock, to_iso

logger = logging.getLogger("sigmine.claims")

CLAIM_ACTIVE = "active"
CLAIM_RELEASED = "released"


class ClaimLedger:
    def __init__(self, store, rate_limiter, clock=None, ttl_seconds=None):
        self.store = store
        self.rate_limiter = rate_limiter
        self.clock = clock or system_clock
        self.ttl = ttl_seconds or config.CLAIM_TTL_SECONDS

    def _is_live(self, claim, now):
        expires_at = parse_iso(claim.get("expires_at"))
        return claim.get("status") == CLAIM_ACTIVE and expires_at is not None and expires_at > now

    def claim(self, market_id, agent_id):
        """Take (or refresh) the lease on ``market_id`` for ``agent_id``."""
        if not market_id:
            raise ValidationError("market_id required")
        if not agent_id:
            raise ValidationError("agent_id required (or use API key)")
        if not isinstance(market_id, str) or not isinstance(agent_id, str):
            raise ValidationError("market_id and agent_id must be strings")

        self.rate_limiter.check(agent_id, "claim")

        with self.store.transaction(CLAIMS) as docs:
            ledger = docs[CLAIMS]
            now = self.clock()
            existing = ledger["claims"].get(market_id)
            if existing and existing["agent_id"] != agent_id and existing.get("status") == CLAIM_ACTIVE:
                age = now - (parse_iso(existing["claimed_at"]) or 0)
                if age < self.ttl:
                    raise ConflictError(
                        "Task already claimed",
                        claimed_by=existing["agent_id"],
                        expires_in_seconds=int(self.ttl - age),
                    )

            claim = {
                "market_id": market_id,
                "agent_id": agent_id,
                "claimed_at": to_iso(now),
                "expires_at": to_iso(now + self.ttl),
                "status": CLAIM_ACTIVE,
            }
            ledger["claims"][market_id] = claim
            ledger["history"].append({**claim, "action": "claimed"})

        logger.info("Task claimed: %s by %s", market_id, agent_id)
        return dict(claim)

    def release(self, market_id, agent_id):
        if not market_id:
            raise ValidationError("market_id required")
        if not isinstance(market_id, str):
            raise ValidationError("market_id must be a string")

        with self.store.transaction(CLAIMS) as docs:
            ledger = docs[CLAIMS]
            claim = ledger["claims"].get(market_id)
            if not claim:
                raise NotFoundError("No active claim found")
            if claim["agent_id"] != agent_id:
                raise ForbiddenError("Not your claim to release")

            claim["status"] = CLAIM_RELEASED
            claim["released_at"] = to_iso(self.clock())
            ledger["history"].append({**claim, "action": "released"})
            del ledger["claims"][market_id]

        logger.info("Claim released: %s by %s", market_id, agent_id)
        return dict(claim)

    def status(self, market_id):
        claim = self.store.load(CLAIMS)["claims"].get(market_id)
        if not claim:
            return {"claimed": False, "available": True}

        now = self.clock()
        if not self._is_live(claim, now):
            return {"claimed": False, "available": True, "expired_claim": claim}

        remaining = parse_iso(claim["expires_at"]) - now
        return {
            "claimed": True,
            "available": False,
            "claim": {**claim, "remaining_seconds": int(remaining)},
        }

    def active_claims(self):
        now = self.clock()
        claims = self.store.load(CLAIMS)["claims"].values()
        return [c for c in claims if self._is_live(c, now)]

    def history(self, market_id=None):
        entries = self.store.load(CLAIMS)["history"]
        if market_id:
            entries = [h for h in entries if h["market_id"] == market_id]
        return entries

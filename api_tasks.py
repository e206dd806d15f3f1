"""Task API Blueprint for SigMine.

Epochs, research tasks (market-grounded and legacy RSS), analysis workflows
and the market claim ledger.
"""

from flask import Blueprint, g, jsonify, request

import workflows
from api_auth import get_network, optional_agent
from errors import NotFoundError

api_tasks = Blueprint("api_tasks", __name__)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@api_tasks.route("/epoch")
def current_epoch():
    return jsonify(get_network().epochs.describe())


# ── tasks ────────────────────────────────────────────────────────────────

@api_tasks.route("/task")
@optional_agent
def legacy_task():
    network = get_network()
    task = network.feed_tasks.random_task()
    return jsonify({"epoch": network.epochs.describe(), "task": task})


@api_tasks.route("/task/market")
@optional_agent
def market_task():
    network = get_network()
    market_id = request.args.get("market_id", "").strip() or None
    task = network.markets.market_task(market_id)
    return jsonify({"epoch": network.epochs.describe(), "task": task})


@api_tasks.route("/markets")
def list_markets():
    return jsonify(get_network().markets.listing())


# ── workflows ────────────────────────────────────────────────────────────

@api_tasks.route("/workflows")
def list_workflows():
    return jsonify({"workflows": workflows.list_workflows()})


@api_tasks.route("/workflow/<workflow_id>")
def get_workflow(workflow_id):
    return jsonify(workflows.get_workflow(workflow_id))


@api_tasks.route("/task/market/<market_id>/workflow")
def market_workflow(market_id):
    market = get_network().markets.find(market_id)
    if not market:
        raise NotFoundError("Market not found")
    recommended = workflows.recommend_workflow(market["question"])
    return jsonify({
        "market_id": market_id,
        "market_question": market["question"],
        "recommended_workflow": recommended,
        "workflow": workflows.get_workflow(recommended),
    })


# ── claims ───────────────────────────────────────────────────────────────

@api_tasks.route("/task/claim", methods=["POST"])
@optional_agent
def claim_task():
    data = _json_body()
    claim = get_network().claims.claim(data.get("market_id"), g.agent_id or data.get("agent_id"))
    return jsonify({
        "success": True,
        "claim": claim,
        "message": "Task claimed! Submit your signal within 30 minutes.",
    }), 201


@api_tasks.route("/task/claims")
def list_claims():
    claims = get_network().claims.active_claims()
    return jsonify({"count": len(claims), "claims": claims})


@api_tasks.route("/task/claim/<market_id>")
def claim_status(market_id):
    return jsonify(get_network().claims.status(market_id))


@api_tasks.route("/task/release", methods=["POST"])
@optional_agent
def release_task():
    data = _json_body()
    get_network().claims.release(data.get("market_id"), g.agent_id or data.get("agent_id"))
    return jsonify({"success": True, "message": "Claim released"})

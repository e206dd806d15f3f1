"""Agent Network API Blueprint for SigMine.

Agents register, keep themselves online with heartbeats, discover each other
by capability, exchange messages and delegate tasks.
"""

from flask import Blueprint, g, jsonify, request

from api_auth import get_network, optional_agent, require_agent
from errors import ValidationError
from registry import GENESIS_CUTOFF, detail_view, private_view
from signals_api import parse_int_param
from timeutil import to_iso

api_agents = Blueprint("api_agents", __name__)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _flag(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() == "true"


# ── registration & profile ──────────────────────────────────────────────

@api_agents.route("/agent/register", methods=["POST"])
def register_agent():
    data = _json_body()
    agent, api_key = get_network().registry.register(
        data.get("name"),
        wallet=data.get("wallet"),
        capabilities=data.get("capabilities"),
        description=data.get("description"),
        metadata=data.get("metadata"),
    )
    number = agent["genesis_number"]
    is_genesis = number <= GENESIS_CUTOFF
    if is_genesis:
        message = f"Genesis Miner #{number}! You get {agent['genesis_multiplier']}x points forever!"
    else:
        message = "Store your API key securely - it cannot be recovered!"

    return jsonify({
        "success": True,
        "agent_id": agent["id"],
        "api_key": api_key,
        "name": agent["name"],
        "capabilities": agent["capabilities"],
        "genesis": {
            "number": number,
            "tier": agent["genesis_tier"],
            "multiplier": agent["genesis_multiplier"],
            "is_genesis": is_genesis,
        },
        "message": message,
    }), 201


@api_agents.route("/agent/me", methods=["GET"])
@require_agent
def get_me():
    return jsonify(private_view(g.agent))


@api_agents.route("/agent/me", methods=["PUT"])
@require_agent
def update_me():
    agent = get_network().registry.update_profile(g.agent_id, _json_body())
    return jsonify({"success": True, "agent": private_view(agent)})


@api_agents.route("/agent/heartbeat", methods=["POST"])
@require_agent
def heartbeat():
    data = _json_body()
    network = get_network()
    agent = network.registry.heartbeat(g.agent_id, data.get("status"), data.get("current_task"))
    return jsonify({
        "success": True,
        "status": agent["status"],
        "unread_messages": network.messages.unread_count(g.agent_id),
        "server_time": to_iso(network.clock()),
    })


@api_agents.route("/agent/<agent_id>", methods=["GET"])
def get_agent(agent_id):
    return jsonify(detail_view(get_network().registry.get(agent_id)))


# ── discovery ────────────────────────────────────────────────────────────

@api_agents.route("/agents", methods=["GET"])
@optional_agent
def list_agents():
    result = get_network().registry.search(
        status=request.args.get("status", "").strip() or None,
        capability=request.args.get("capability", "").strip() or None,
        text=request.args.get("search", "").strip() or None,
        limit=parse_int_param(request.args.get("limit"), 50, minimum=1, maximum=200),
        offset=parse_int_param(request.args.get("offset"), 0, minimum=0),
    )
    return jsonify(result)


@api_agents.route("/agents/online", methods=["GET"])
def online_agents():
    agents = get_network().registry.online()
    return jsonify({"count": len(agents), "agents": agents})


@api_agents.route("/agents/match", methods=["GET"])
def match_agents():
    capabilities = request.args.get("capabilities", "").strip()
    capability = request.args.get("capability", "").strip()
    if capabilities:
        required = [c.strip() for c in capabilities.split(",") if c.strip()]
    elif capability:
        required = [capability]
    else:
        raise ValidationError("Provide capability or capabilities param")

    agents = get_network().registry.match(
        required, online_only=_flag(request.args.get("online_only"), default=True))
    return jsonify({
        "required_capabilities": required,
        "matches": len(agents),
        "agents": agents,
    })


# ── messaging ────────────────────────────────────────────────────────────

@api_agents.route("/agent/message", methods=["POST"])
@require_agent
def send_message():
    data = _json_body()
    message = get_network().messages.send(
        g.agent_id,
        data.get("to"),
        msg_type=data.get("type"),
        subject=data.get("subject"),
        body=data.get("body"),
        data=data.get("data"),
        priority=data.get("priority"),
    )
    return jsonify({
        "success": True,
        "message_id": message["id"],
        "delivered_to": message["to"],
    }), 201


@api_agents.route("/agent/inbox", methods=["GET"])
@require_agent
def inbox():
    result = get_network().messages.inbox(
        g.agent_id,
        unread_only=_flag(request.args.get("unread_only")),
        msg_type=request.args.get("type", "").strip() or None,
        limit=parse_int_param(request.args.get("limit"), 50, minimum=1, maximum=500),
    )
    return jsonify(result)


@api_agents.route("/agent/inbox/<message_id>/read", methods=["POST"])
@require_agent
def mark_read(message_id):
    message = get_network().messages.mark_read(g.agent_id, message_id)
    return jsonify({"success": True, "message": message})


@api_agents.route("/agent/inbox/<message_id>", methods=["DELETE"])
@require_agent
def delete_message(message_id):
    get_network().messages.delete(g.agent_id, message_id)
    return jsonify({"success": True})


@api_agents.route("/task/delegate", methods=["POST"])
@require_agent
def delegate_task():
    data = _json_body()
    result = get_network().messages.delegate(
        g.agent_id,
        data.get("required_capabilities"),
        subject=data.get("subject"),
        body=data.get("body"),
        data=data.get("data"),
        priority=data.get("priority"),
    )
    return jsonify({"success": True, **result}), 201


# ── share bonus ──────────────────────────────────────────────────────────

@api_agents.route("/share/tweet", methods=["GET"])
def share_tweet():
    return jsonify(get_network().rewards.share_tweet())


@api_agents.route("/share/claim", methods=["POST"])
@require_agent
def claim_share_bonus():
    data = _json_body()
    result = get_network().rewards.claim_share_bonus(
        g.agent_id, tweet_url=data.get("tweet_url"), tweet_id=data.get("tweet_id"))
    return jsonify({
        "success": True,
        "message": f"Thanks for sharing! +{result['points_awarded']} point awarded!",
        **result,
    })

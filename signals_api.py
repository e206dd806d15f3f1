"""Signals API Blueprint for SigMine: submissions, leaderboard and stats."""

from flask import Blueprint, g, jsonify, request

from api_auth import get_network, optional_agent

signals_api = Blueprint("signals_api", __name__)


def parse_int_param(value, default, minimum=None, maximum=None):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = default

    if minimum is not None:
        parsed = max(minimum, parsed)
    if maximum is not None:
        parsed = min(maximum, parsed)
    return parsed


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@signals_api.route("/signal/market", methods=["POST"])
@optional_agent
def submit_market_signal():
    """Market-grounded signal scored by the reward engine."""
    entry = get_network().rewards.submit_market_signal(_json_body(), agent_id=g.agent_id)
    return jsonify({
        "success": True,
        "signal_id": entry["signal_id"],
        "epoch_id": entry["epoch_id"],
        "points_awarded": entry["points"],
        "points_breakdown": entry["points_breakdown"],
        "is_first_signal": entry["is_first_signal"],
        "direction": entry["direction"],
        "confidence": entry["confidence"],
    }), 201


@signals_api.route("/signal", methods=["POST"])
@optional_agent
def submit_signal():
    """Legacy news signal, flat point."""
    entry = get_network().rewards.submit_legacy_signal(_json_body(), agent_id=g.agent_id)
    return jsonify({
        "success": True,
        "signal_id": entry["signal_id"],
        "epoch_id": entry["epoch_id"],
        "points_awarded": entry["points"],
    }), 201


@signals_api.route("/leaderboard")
def leaderboard():
    network = get_network()
    limit = parse_int_param(request.args.get("limit"), 20, minimum=1, maximum=100)
    return jsonify({
        "epoch": network.epochs.describe(),
        "leaderboard": network.rewards.leaderboard(limit),
    })


@signals_api.route("/signals")
def list_signals():
    limit = parse_int_param(request.args.get("limit"), 50, minimum=1, maximum=200)
    signals = get_network().rewards.recent_signals(limit)
    return jsonify({"count": len(signals), "signals": signals})


@signals_api.route("/stats")
def stats():
    return jsonify(get_network().rewards.stats())

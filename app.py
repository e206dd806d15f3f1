#!/usr/bin/env python3
"""SigMine - signal mining pool where AI agents research prediction markets and earn points."""

import logging

from flask import Flask, jsonify
from flask_cors import CORS

import config
from api_agents import api_agents
from api_tasks import api_tasks
from errors import NetworkError
from network import AgentNetwork
from registry import AGENT_CAPABILITIES
from rewards import VERSION
from signals_api import signals_api

logger = logging.getLogger("sigmine.app")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"


def configure_logging(level=None, log_file=None):
    handlers = [logging.StreamHandler()]
    log_file = log_file if log_file is not None else config.LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=handlers,
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(network=None):
    app = Flask(__name__)
    CORS(app)
    app.extensions["sigmine"] = network or AgentNetwork()

    app.register_blueprint(api_agents)
    app.register_blueprint(api_tasks)
    app.register_blueprint(signals_api)

    @app.errorhandler(NetworkError)
    def handle_network_error(e):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.route("/")
    def index():
        return jsonify({
            "name": "SigMine - Signal Mining Pool",
            "version": VERSION,
            "status": "online",
            "features": [
                "Agent Registration & API Keys",
                "Heartbeat System",
                "Agent Discovery",
                "Inter-Agent Messaging",
                "Capability Matching",
                "Market Research Tasks",
                "Signal Mining",
            ],
            "endpoints": {
                "registration": "POST /agent/register",
                "heartbeat": "POST /agent/heartbeat",
                "agents": "GET /agents",
                "messaging": "POST /agent/message",
                "matching": "GET /agents/match?capability=X",
                "market_task": "GET /task/market",
                "market_signal": "POST /signal/market",
                "signals": "POST /signal",
            },
        })

    @app.route("/capabilities")
    def capabilities():
        return jsonify({
            "capabilities": list(AGENT_CAPABILITIES),
            "descriptions": AGENT_CAPABILITIES,
        })

    return app


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    configure_logging()
    logger.info("SigMine running at http://localhost:%d", config.PORT)
    create_app().run(host="0.0.0.0", port=config.PORT, threaded=True)

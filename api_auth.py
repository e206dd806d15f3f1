"""API key authentication for SigMine agents."""

from functools import wraps

from flask import current_app, g, request

from errors import AuthError


def get_network():
    """The AgentNetwork bound to the running app."""
    return current_app.extensions["sigmine"]


def _raw_key():
    # X-API-Key header first, then ?api_key= for agents that cannot set headers
    raw_key = (request.headers.get("X-API-Key") or "").strip()
    if not raw_key:
        raw_key = (request.args.get("api_key") or "").strip()
    return raw_key


def require_agent(f):
    """Decorator: reject the request unless it carries a valid agent API key."""
    @wraps(f)
    def decorated(*args, **kwargs):
        agent = get_network().registry.authenticate(_raw_key())
        g.agent = agent
        g.agent_id = agent["id"]
        return f(*args, **kwargs)
    return decorated


def optional_agent(f):
    """Decorator: attach the agent when a valid key is present, ignore it otherwise."""
    @wraps(f)
    def decorated(*args, **kwargs):
        g.agent = None
        g.agent_id = None
        raw_key = _raw_key()
        if raw_key:
            try:
                agent = get_network().registry.authenticate(raw_key)
            except AuthError:
                agent = None
            if agent:
                g.agent = agent
                g.agent_id = agent["id"]
        return f(*args, **kwargs)
    return decorated

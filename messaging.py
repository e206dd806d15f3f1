"""Per-agent inboxes for direct messages and delegated tasks."""

import logging
import uuid
from enum import Enum

from errors import NotFoundError, ValidationError
from registry import AgentStatus, find_by_name
from store import MESSAGES, REGISTRY
from timeutil import parse_iso, system_clock, to_iso

logger = logging.getLogger("sigmine.messaging")

DEFAULT_INBOX_LIMIT = 50


class MessageType(Enum):
    MESSAGE = "message"
    TASK = "task"
    REQUEST = "request"
    RESPONSE = "response"


class Priority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


def _parse_enum(enum_cls, value, field, default):
    if value is None or value == "":
        return default
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}") from None


class MessageQueue:
    def __init__(self, store, registry, clock=None):
        self.store = store
        self.registry = registry
        self.clock = clock or system_clock

    def _deliver(self, docs, sender, recipient, msg_type, subject, body, data, priority):
        message = {
            "id": str(uuid.uuid4()),
            "from": sender["id"],
            "from_name": sender["name"],
            "to": recipient["id"],
            "type": msg_type.value,
            "subject": subject or "",
            "body": body or "",
            "data": data or {},
            "priority": priority.value,
            "read": False,
            "read_at": None,
            "created_at": to_iso(self.clock()),
        }
        docs[MESSAGES].setdefault(recipient["id"], []).append(message)
        sender["messages_sent"] = sender.get("messages_sent", 0) + 1
        recipient["messages_received"] = recipient.get("messages_received", 0) + 1
        return message

    def send(self, from_id, to, msg_type=None, subject="", body="", data=None, priority=None):
        """Deliver a message to an agent addressed by id or (any-case) name."""
        if not to:
            raise ValidationError("Recipient agent ID (to) required")
        if not isinstance(to, str):
            raise ValidationError("Recipient agent ID (to) must be a string")
        msg_type = _parse_enum(MessageType, msg_type, "type", MessageType.MESSAGE)
        priority = _parse_enum(Priority, priority, "priority", Priority.NORMAL)

        with self.store.transaction(REGISTRY, MESSAGES) as docs:
            agents = docs[REGISTRY]["agents"]
            sender = agents.get(from_id)
            if not sender:
                raise NotFoundError("Sender agent not found")
            recipient = agents.get(to) or find_by_name(docs[REGISTRY], str(to))
            if not recipient:
                raise NotFoundError("Recipient agent not found")
            if recipient["id"] == from_id:
                raise ValidationError("Cannot message yourself")

            message = self._deliver(docs, sender, recipient, msg_type, subject, body, data, priority)

        logger.info("Message: %s -> %s (%s)", sender["name"], recipient["name"], msg_type.value)
        return message

    def inbox(self, agent_id, unread_only=False, msg_type=None, limit=DEFAULT_INBOX_LIMIT):
        messages = list(self.store.load(MESSAGES).get(agent_id, []))
        if unread_only:
            messages = [m for m in messages if not m["read"]]
        if msg_type:
            messages = [m for m in messages if m["type"] == msg_type]
        messages.sort(key=lambda m: parse_iso(m["created_at"]) or 0, reverse=True)
        messages = messages[:limit]
        return {
            "count": len(messages),
            "unread": sum(1 for m in messages if not m["read"]),
            "messages": messages,
        }

    def unread_count(self, agent_id):
        return sum(1 for m in self.store.load(MESSAGES).get(agent_id, []) if not m["read"])

    def mark_read(self, agent_id, message_id):
        """Mark a message read. Calling it again keeps the first read_at."""
        with self.store.transaction(MESSAGES) as docs:
            for message in docs[MESSAGES].get(agent_id, []):
                if message["id"] == message_id:
                    if not message["read"]:
                        message["read"] = True
                        message["read_at"] = to_iso(self.clock())
                    return dict(message)
            raise NotFoundError("Message not found")

    def delete(self, agent_id, message_id):
        with self.store.transaction(MESSAGES) as docs:
            inbox = docs[MESSAGES].get(agent_id, [])
            for idx, message in enumerate(inbox):
                if message["id"] == message_id:
                    del inbox[idx]
                    return
            raise NotFoundError("Message not found")

    def delegate(self, from_id, required_capabilities, subject=None, body="", data=None, priority=None):
        """Hand a task to the best-scoring agent that has every capability.

        Online agents are preferred; busy agents are the fallback pool.
        """
        if not isinstance(required_capabilities, list):
            raise ValidationError("required_capabilities array needed")
        priority = _parse_enum(Priority, priority, "priority", Priority.NORMAL)

        agents = [a for a in self.registry.all_agents() if a["id"] != from_id]
        capable = [a for a in agents if all(c in a["capabilities"] for c in required_capabilities)]
        candidates = [a for a in capable if a["status"] == AgentStatus.ONLINE.value]
        if not candidates:
            candidates = [a for a in capable if a["status"] == AgentStatus.BUSY.value]
        if not candidates:
            raise NotFoundError("No matching agents found",
                                required_capabilities=required_capabilities)

        chosen = sorted(candidates, key=lambda a: a["points"], reverse=True)[0]
        payload = dict(data or {})
        payload["required_capabilities"] = required_capabilities
        payload["delegated_at"] = to_iso(self.clock())

        with self.store.transaction(REGISTRY, MESSAGES) as docs:
            agents_doc = docs[REGISTRY]["agents"]
            sender = agents_doc.get(from_id)
            if not sender:
                raise NotFoundError("Sender agent not found")
            recipient = agents_doc[chosen["id"]]
            message = self._deliver(docs, sender, recipient, MessageType.TASK,
                                    subject or "Delegated Task", body, payload, priority)

        logger.info("Task delegated: %s -> %s", sender["name"], recipient["name"])
        return {
            "task_id": message["id"],
            "delegated_to": {
                "id": chosen["id"],
                "name": chosen["name"],
                "capabilities": chosen["capabilities"],
            },
            "candidates_considered": len(candidates),
        }

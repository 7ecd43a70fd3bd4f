"""
Event Schema.

Defines the Event dataclass shared by the REST API (publisher side) and
the WebSocket gateway (subscriber side).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass
class Event:
    """
    Realtime event envelope.

    ``entity`` carries a small summary (statuses, codes) so a UI can decide
    whether to refetch; it is never authoritative. ``actor`` identifies who
    triggered the change.
    """

    type: str
    outlet_id: int
    order_id: int | None = None
    payment_id: int | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version

    def __post_init__(self) -> None:
        """Reject malformed events before they reach Redis."""
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")

        if not _is_positive_int(self.outlet_id):
            raise ValueError("Event outlet_id must be a positive integer")

        if self.order_id is not None and not _is_positive_int(self.order_id):
            raise ValueError("Event order_id must be a positive integer or None")

        if self.payment_id is not None and not _is_positive_int(self.payment_id):
            raise ValueError("Event payment_id must be a positive integer or None")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

        if self.actor is not None and not isinstance(self.actor, dict):
            raise ValueError("Event actor must be a dict or None")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["actor"] = data["actor"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize event from JSON string (validated in __post_init__)."""
        data = json.loads(json_str)
        return cls(**data)

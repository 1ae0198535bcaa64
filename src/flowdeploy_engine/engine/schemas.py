"""Typed views of remote engine resources."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    # Offset-less timestamps from the engine are UTC.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class RemoteWorkflow:
    """A workflow as reported by the remote engine."""

    id: str
    name: str
    active: bool = False
    nodes: list[dict[str, Any]] = field(default_factory=list)
    connections: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteWorkflow":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", "") or "",
            active=bool(data.get("active", False)),
            nodes=data.get("nodes") or [],
            connections=data.get("connections") or {},
            created_at=_parse_ts(data.get("createdAt")),
            updated_at=_parse_ts(data.get("updatedAt")),
        )


@dataclass
class RemoteCredential:
    """A credential as reported by the remote engine. Secret data is never returned."""

    id: str
    name: str
    type: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteCredential":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", "") or "",
            type=data.get("type", "") or "",
            created_at=_parse_ts(data.get("createdAt")),
            updated_at=_parse_ts(data.get("updatedAt")),
        )

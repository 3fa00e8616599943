"""Tracker-side records: work items and their type schemas."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class WorkItem:
    id: int
    title: str = ""
    state: str = ""
    item_type: str = ""
    assigned_to: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    parent_id: Optional[int] = None
    rev: int = 0

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "WorkItem":
        fields = payload.get("fields") or {}
        assigned = fields.get("System.AssignedTo")
        if isinstance(assigned, dict):
            assigned = assigned.get("displayName") or assigned.get("uniqueName")
        tags = [t.strip() for t in str(fields.get("System.Tags") or "").split(";") if t.strip()]
        parent_id = None
        for relation in payload.get("relations") or []:
            if relation.get("rel") == "System.LinkTypes.Hierarchy-Reverse":
                try:
                    parent_id = int(str(relation.get("url", "")).rstrip("/").split("/")[-1])
                except ValueError:
                    parent_id = None
                break
        return cls(
            id=int(payload["id"]),
            title=str(fields.get("System.Title") or ""),
            state=str(fields.get("System.State") or ""),
            item_type=str(fields.get("System.WorkItemType") or ""),
            assigned_to=assigned,
            tags=tags,
            parent_id=parent_id,
            rev=int(payload.get("rev") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "state": self.state,
            "item_type": self.item_type,
            "assigned_to": self.assigned_to,
            "tags": list(self.tags),
            "parent_id": self.parent_id,
            "rev": self.rev,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkItem":
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            state=data.get("state", ""),
            item_type=data.get("item_type", ""),
            assigned_to=data.get("assigned_to"),
            tags=list(data.get("tags") or []),
            parent_id=data.get("parent_id"),
            rev=int(data.get("rev") or 0),
        )


@dataclass
class ItemState:
    name: str
    category: str = ""
    color: str = ""


@dataclass
class TypeSchema:
    """States of a work item type and the transitions allowed between them."""

    name: str
    states: List[ItemState] = field(default_factory=list)
    transitions: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def state_names(self) -> List[str]:
        return [s.name for s in self.states]

    def find_state(self, candidates: Iterable[str]) -> Optional[str]:
        """First candidate (case-insensitive) the type actually defines."""
        by_lower = {name.lower(): name for name in self.state_names}
        for candidate in candidates:
            match = by_lower.get(str(candidate).strip().lower())
            if match:
                return match
        return None

    def can_transition(self, current: str, target: str) -> bool:
        allowed = self.transitions.get(current)
        if allowed is None:
            return target in self.state_names
        return target in allowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "states": [{"name": s.name, "category": s.category, "color": s.color} for s in self.states],
            "transitions": {k: list(v) for k, v in self.transitions.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TypeSchema":
        return cls(
            name=data.get("name", ""),
            states=[ItemState(**s) for s in data.get("states") or []],
            transitions={k: list(v) for k, v in (data.get("transitions") or {}).items()},
        )


__all__ = ["WorkItem", "ItemState", "TypeSchema"]

import base64
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from workfocus.core import ItemState, TypeSchema, ValidationError, WorkItem, validate_item_id
from workfocus.core.errors import SOURCE_TRACKER
from .http import RestClient
from .rate_limiter import RateLimiter

BATCH_SIZE = 200
FILTER_FIELDS = {
    "state": "System.State",
    "item_type": "System.WorkItemType",
    "assigned_to": "System.AssignedTo",
    "area_path": "System.AreaPath",
    "iteration_path": "System.IterationPath",
}


def basic_auth_header(pat: str) -> Dict[str, str]:
    encoded = base64.b64encode(f":{pat}".encode()).decode()
    return {"Authorization": f"Basic {encoded}"}


def _wiql_literal(value: Any) -> str:
    text = str(value)
    if text.startswith("@"):
        return text
    return "'" + text.replace("'", "''") + "'"


def build_wiql(filters: Dict[str, Any]) -> str:
    """WIQL text for the supported filter keys; unknown keys are rejected."""
    clauses = ["[System.TeamProject] = @project"]
    for key, value in filters.items():
        if value in (None, "", [], ()):
            continue
        if key == "limit":
            continue
        if key == "tags":
            tags = value if isinstance(value, (list, tuple)) else [value]
            clauses.extend(f"[System.Tags] CONTAINS {_wiql_literal(tag)}" for tag in tags)
            continue
        field = FILTER_FIELDS.get(key)
        if field is None:
            raise ValidationError(f"Unknown filter {key!r}", filter=key)
        if isinstance(value, (list, tuple)):
            clauses.append(f"[{field}] IN ({', '.join(_wiql_literal(v) for v in value)})")
        else:
            clauses.append(f"[{field}] = {_wiql_literal(value)}")
    return (
        "SELECT [System.Id] FROM WorkItems WHERE "
        + " AND ".join(clauses)
        + " ORDER BY [System.ChangedDate] DESC"
    )


class DevOpsTrackerClient:
    """Azure DevOps work item REST client."""

    def __init__(
        self,
        base_url: str,
        project: str,
        token_provider: Callable[[], str],
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        api_version: str = "7.0",
        timeout: float = 30,
        max_attempts: int = 3,
        rest: Optional[RestClient] = None,
    ) -> None:
        self.project = project
        self.api_version = api_version
        self.rest = rest or RestClient(
            SOURCE_TRACKER,
            base_url,
            session,
            lambda: basic_auth_header(token_provider()),
            rate_limiter=rate_limiter,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    def _path(self, suffix: str) -> str:
        return f"{quote(self.project)}/_apis/wit/{suffix}"

    def get_item(self, item_id: int) -> WorkItem:
        validate_item_id(item_id)
        payload = self.rest.get(
            self._path(f"workitems/{item_id}"),
            params={"api-version": self.api_version, "$expand": "relations"},
        )
        return WorkItem.from_api(payload)

    def update_item_state(self, item_id: int, new_state: str) -> WorkItem:
        validate_item_id(item_id)
        patch = [{"op": "add", "path": "/fields/System.State", "value": new_state}]
        payload = self.rest.request(
            "PATCH",
            self._path(f"workitems/{item_id}"),
            json=patch,
            params={"api-version": self.api_version},
            headers={"Content-Type": "application/json-patch+json"},
        )
        return WorkItem.from_api(payload)

    def get_type_schema(self, item_type: str) -> TypeSchema:
        payload = self.rest.get(
            self._path(f"workitemtypes/{quote(item_type)}"),
            params={"api-version": self.api_version},
        ) or {}
        states = [
            ItemState(name=s.get("name", ""), category=s.get("category", ""), color=s.get("color", ""))
            for s in payload.get("states") or []
        ]
        transitions = {
            source: [t.get("to", "") for t in targets or [] if t.get("to")]
            for source, targets in (payload.get("transitions") or {}).items()
            if source
        }
        return TypeSchema(name=payload.get("name") or item_type, states=states, transitions=transitions)

    def query(self, filters: Dict[str, Any]) -> List[WorkItem]:
        limit = int(filters.get("limit") or 0)
        result = self.rest.post(
            self._path("wiql"),
            json={"query": build_wiql(filters)},
            params={"api-version": self.api_version},
            read_only=True,
        ) or {}
        ids = [int(ref["id"]) for ref in result.get("workItems") or [] if "id" in ref]
        if limit:
            ids = ids[:limit]
        items: List[WorkItem] = []
        for offset in range(0, len(ids), BATCH_SIZE):
            chunk = ids[offset : offset + BATCH_SIZE]
            payload = self.rest.get(
                self._path("workitems"),
                params={
                    "ids": ",".join(str(i) for i in chunk),
                    "$expand": "relations",
                    "api-version": self.api_version,
                },
            ) or {}
            by_id = {int(raw["id"]): WorkItem.from_api(raw) for raw in payload.get("value") or []}
            items.extend(by_id[i] for i in chunk if i in by_id)
        return items


__all__ = ["DevOpsTrackerClient", "build_wiql", "basic_auth_header"]

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from utils.http import ApiSession
from utils.models import Issue
from utils.retry import RetryPolicy, request_with_retry

LOG = logging.getLogger("JiraCloud.fields")

NAMED_TYPES = ("priority", "resolution", "version", "component", "issuetype", "status")


def get_issue(api: ApiSession, issue_key: str, fields: Optional[Iterable[str]] = None, retry: Optional[RetryPolicy] = None) -> Issue:
    params = {"fields": ",".join(fields)} if fields else None
    resp = request_with_retry(api, "GET", f"/rest/api/3/issue/{issue_key}", policy=retry, context=f"Issue {issue_key}", params=params)
    resp.raise_for_status()
    return Issue.from_json(resp.json())


def get_fields(api: ApiSession, retry: Optional[RetryPolicy] = None) -> List[Dict[str, Any]]:
    resp = request_with_retry(api, "GET", "/rest/api/3/field", policy=retry, context="Field list")
    resp.raise_for_status()
    return resp.json()


def resolve_field(api: ApiSession, name_or_id: str, retry: Optional[RetryPolicy] = None) -> Dict[str, Any]:
    """Find a field by id, key, or (case-insensitive) display name."""
    fields = get_fields(api, retry=retry)
    for candidate in fields:
        if name_or_id in (candidate.get("id"), candidate.get("key")):
            return candidate
    wanted = name_or_id.lower()
    for candidate in fields:
        if (candidate.get("name") or "").lower() == wanted:
            return candidate
    raise LookupError(f"Unknown Jira field: {name_or_id}")


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _as_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)).isoformat()


def _as_datetime(value: Any) -> str:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    # Jira wants milliseconds and a numeric offset, e.g. 2024-05-01T10:00:00.000+0000
    if parsed.tzinfo is None:
        return parsed.strftime("%Y-%m-%dT%H:%M:%S.000+0000")
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.000%z")


def _shape_scalar(kind: str, value: Any) -> Any:
    if kind in ("string", "any"):
        return str(value)
    if kind == "number":
        return float(value)
    if kind == "date":
        return _as_date(value)
    if kind == "datetime":
        return _as_datetime(value)
    if kind == "option":
        return {"value": str(value)}
    if kind == "user":
        return {"accountId": str(value)}
    if kind in NAMED_TYPES:
        return {"name": str(value)}
    raise ValueError(f"Unsupported field type: {kind}")


def shape_field_value(schema: Dict[str, Any], value: Any) -> Any:
    """Convert a plain value into the JSON shape Jira expects for ``schema``."""
    kind = (schema or {}).get("type")
    if not kind:
        raise ValueError("Field has no schema type")
    if value is None:
        return [] if kind == "array" else None
    if kind == "array":
        item_kind = schema.get("items")
        if not item_kind:
            raise ValueError("Array field has no item type")
        return [_shape_scalar(item_kind, item) for item in _as_list(value)]
    return _shape_scalar(kind, value)


def set_issue_field(api: ApiSession, issue_key: str, field: str, value: Any, retry: Optional[RetryPolicy] = None) -> Dict[str, Any]:
    """Set one field on an issue. Returns the payload that was sent."""
    meta = resolve_field(api, field, retry=retry)
    payload = {"fields": {meta["id"]: shape_field_value(meta.get("schema") or {}, value)}}
    resp = request_with_retry(api, "PUT", f"/rest/api/3/issue/{issue_key}", policy=retry, context=f"Edit {issue_key}", json=payload)
    resp.raise_for_status()
    LOG.info("Updated %s on %s", meta.get("name", meta["id"]), issue_key)
    return payload

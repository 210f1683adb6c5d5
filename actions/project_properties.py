import logging
from typing import Any, List, Optional

from utils.http import ApiSession
from utils.retry import RetryPolicy, request_with_retry

LOG = logging.getLogger("JiraCloud.properties")


def _path(project: str, key: Optional[str] = None) -> str:
    base = f"/rest/api/3/project/{project}/properties"
    return f"{base}/{key}" if key else base


def list_project_properties(api: ApiSession, project: str, retry: Optional[RetryPolicy] = None) -> List[str]:
    resp = request_with_retry(api, "GET", _path(project), policy=retry, context=f"Properties of {project}")
    resp.raise_for_status()
    return [entry.get("key") for entry in resp.json().get("keys", []) if entry.get("key")]


def get_project_property(api: ApiSession, project: str, key: str, retry: Optional[RetryPolicy] = None) -> Optional[Any]:
    """Return the property value, or None when the property does not exist."""
    resp = request_with_retry(api, "GET", _path(project, key), policy=retry, context=f"Property {project}/{key}")
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json().get("value")


def set_project_property(api: ApiSession, project: str, key: str, value: Any, retry: Optional[RetryPolicy] = None) -> bool:
    """Create or replace a property. Returns True when it was newly created."""
    resp = request_with_retry(api, "PUT", _path(project, key), policy=retry, context=f"Property {project}/{key}", json=value)
    resp.raise_for_status()
    created = resp.status_code == 201
    LOG.info("%s project property %s on %s", "Created" if created else "Updated", key, project)
    return created


def delete_project_property(api: ApiSession, project: str, key: str, retry: Optional[RetryPolicy] = None) -> None:
    resp = request_with_retry(api, "DELETE", _path(project, key), policy=retry, context=f"Property {project}/{key}")
    resp.raise_for_status()
    LOG.info("Deleted project property %s on %s", key, project)

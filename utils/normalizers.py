from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List
from urllib.parse import urlparse

from utils.models import Issue


_NON_WORD_RE = re.compile(r"[^A-Za-z0-9]+")


def _slug(value: str) -> str:
    cleaned = _NON_WORD_RE.sub("-", value.strip())
    cleaned = cleaned.strip("-")
    return cleaned.lower() or "unknown"


def endpoint_slug(base_url: str) -> str:
    """'https://acme.atlassian.net/' -> 'acme-atlassian-net'"""
    parsed = urlparse(base_url)
    return _slug(parsed.netloc or parsed.path or base_url)


def issue_projection(issue: Issue) -> Dict[str, Any]:
    return {"key": issue.key, "fields": issue.fields}


def page_projection(items: Iterable[Issue]) -> List[Dict[str, Any]]:
    return [issue_projection(issue) for issue in items]


def page_filename(endpoint: str, timestamp: str, offset: int) -> str:
    return f"{endpoint}_{timestamp}_{offset}.json"

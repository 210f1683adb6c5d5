from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

DEFAULT_FIELD_SELECTOR: Tuple[str, ...] = (
    "*all",
    "-attachments",
    "-comment",
    "-issuelinks",
    "-subtasks",
    "-worklog",
)


@dataclass(frozen=True)
class Issue:
    key: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Issue":
        return cls(key=data.get("key", ""), fields=data.get("fields") or {})


@dataclass(frozen=True)
class SearchRequest:
    """One JQL search call: predicate plus page window and field selector."""

    predicate: str
    page_size: int
    offset: int = 0
    field_selector: Sequence[str] = DEFAULT_FIELD_SELECTOR

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        if self.offset < 0:
            raise ValueError("offset must be non-negative")

    def to_body(self) -> Dict[str, Any]:
        return {
            "jql": self.predicate,
            "fields": list(self.field_selector),
            "fieldsByKeys": False,
            "maxResults": self.page_size,
            "startAt": self.offset,
        }


@dataclass
class SearchPage:
    total_count: int
    items: List[Issue] = field(default_factory=list)
    is_rate_limited: bool = False

    @classmethod
    def rate_limited(cls) -> "SearchPage":
        return cls(total_count=0, items=[], is_rate_limited=True)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SearchPage":
        return cls(
            total_count=int(data.get("total", 0) or 0),
            items=[Issue.from_json(raw) for raw in data.get("issues", []) or []],
        )


class JobState(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CollectionJob:
    request: SearchRequest
    state: JobState = JobState.PENDING
    result: Optional[SearchPage] = None
    attempts: int = 0

    @property
    def offset(self) -> int:
        return self.request.offset


@dataclass(frozen=True)
class ChangelogEntry:
    id: str
    author: str
    created: str
    field: str
    field_id: str
    from_value: Optional[str]
    from_string: Optional[str]
    to_value: Optional[str]
    to_string: Optional[str]


@dataclass
class CollectorSettings:
    """Tuning for the paginated query collector."""

    page_size: int = 100
    max_concurrency: int = 100
    warning_limit: int = 2000
    rate_limit_interval: float = 20.0
    rate_limit_max_attempts: Optional[int] = None
    dispatch_delay: float = 2.0
    field_selector: Tuple[str, ...] = DEFAULT_FIELD_SELECTOR

    def __post_init__(self) -> None:
        for name in ("page_size", "max_concurrency"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"collector {name} must be a positive integer, got {value!r}")
        for name in ("warning_limit", "rate_limit_interval", "dispatch_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"collector {name} must not be negative, got {getattr(self, name)!r}")
        if self.rate_limit_max_attempts is not None and self.rate_limit_max_attempts < 1:
            raise ValueError(f"collector rate_limit_max_attempts must be at least 1, got {self.rate_limit_max_attempts!r}")
        if not self.field_selector:
            raise ValueError("collector field_selector must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectorSettings":
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in (data or {}).items() if key in known}
        if "field_selector" in values:
            selector = values["field_selector"]
            if isinstance(selector, str):
                selector = [part.strip() for part in selector.split(",") if part.strip()]
            values["field_selector"] = tuple(selector)
        return cls(**values)

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

from utils.models import Issue
from utils.normalizers import endpoint_slug, page_filename, page_projection

LOG = logging.getLogger("JiraCloud.export")


def _write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


class PageFileSink:
    """Writes each collected page to its own JSON file.

    Files are named ``<endpoint>_<timestamp>_<offset>.json`` and hold
    ``[{"key": ..., "fields": {...}}, ...]``. Pages never share a file, so
    concurrent writers need no locking.
    """

    def __init__(self, directory: Union[str, Path], base_url: str, timestamp: Optional[str] = None) -> None:
        self.directory = Path(directory)
        self.endpoint = endpoint_slug(base_url)
        self.timestamp = timestamp or datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")

    def path_for(self, offset: int) -> Path:
        return self.directory / page_filename(self.endpoint, self.timestamp, offset)

    def write(self, offset: int, items: Iterable[Issue]) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(offset)
        _write_json(path, page_projection(items))
        LOG.debug("Wrote page at offset %d to %s", offset, path)
        return path


def export_results(issues: List[Issue], path: Union[str, Path]) -> Path:
    """Write a whole aggregate to a single JSON file."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    _write_json(out, page_projection(issues))
    return out

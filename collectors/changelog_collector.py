import logging
from typing import List, Optional

from utils.http import ApiSession
from utils.models import ChangelogEntry
from utils.retry import RetryPolicy, request_with_retry

LOG = logging.getLogger("JiraCloud.changelog")


def get_changelog(api: ApiSession, issue_key: str, field: Optional[str] = None, retry: Optional[RetryPolicy] = None) -> List[ChangelogEntry]:
    """
    Return the change history of an issue, one entry per changed field.

    Uses the changelog embedded in /rest/api/3/issue/{key}?expand=changelog,
    which Jira caps at 100 histories; a warning is logged when it is cut short.
    ``field`` filters on the field name or id, case-insensitively.
    """
    resp = request_with_retry(
        api,
        "GET",
        f"/rest/api/3/issue/{issue_key}",
        policy=retry,
        context=f"Changelog {issue_key}",
        params={"expand": "changelog", "fields": "key"},
    )
    resp.raise_for_status()
    changelog = resp.json().get("changelog") or {}
    histories = changelog.get("histories", []) or []

    total = changelog.get("total", len(histories))
    if total > len(histories):
        LOG.warning(
            "Changelog for %s is truncated: %d of %d entries returned.",
            issue_key,
            len(histories),
            total,
        )

    wanted = field.lower() if field else None
    entries: List[ChangelogEntry] = []
    for history in histories:
        author = (history.get("author") or {}).get("displayName", "")
        for item in history.get("items", []) or []:
            name = item.get("field", "") or ""
            field_id = item.get("fieldId", "") or ""
            if wanted and wanted not in (name.lower(), field_id.lower()):
                continue
            entries.append(
                ChangelogEntry(
                    id=str(history.get("id", "")),
                    author=author,
                    created=history.get("created", ""),
                    field=name,
                    field_id=field_id,
                    from_value=item.get("from"),
                    from_string=item.get("fromString"),
                    to_value=item.get("to"),
                    to_string=item.get("toString"),
                )
            )

    LOG.debug("Found %d changelog entries for %s", len(entries), issue_key)
    return entries

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

from actions.issue_fields import set_issue_field
from actions.project_properties import (
    delete_project_property,
    get_project_property,
    list_project_properties,
    set_project_property,
)
from collectors.changelog_collector import get_changelog
from collectors.jql_collector import JiraSearchClient, JqlCollector
from collectors.services_collector import list_services
from utils import common
from utils.config_loader import collector_settings, load_config, merge_settings
from utils.export import PageFileSink, export_results
from utils.http import reset_session
from utils.retry import RetryPolicy

LOG = logging.getLogger("JiraCloud")
VERSION = "1.0.0"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        return json.dumps(payload, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    SYMBOLS = {
        'DEBUG': ' ',
        'INFO': '✓',
        'WARNING': '⚠',
        'ERROR': '✗',
        'CRITICAL': '✗',
    }
    RESET = '\033[0m'
    DIM = '\033[2m'

    def __init__(self, debug_mode: bool = False):
        self.debug_mode = debug_mode
        super().__init__("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        if self.debug_mode:
            original_levelname = record.levelname
            record.levelname = f"{color}{original_levelname}{self.RESET}"
            result = super().format(record)
            record.levelname = original_levelname
            return result

        message = record.getMessage()
        symbol = self.SYMBOLS.get(record.levelname, '•')
        logger_name = record.name.replace('JiraCloud.', '')
        if logger_name == 'JiraCloud':
            return f"{color}{symbol}{self.RESET} {message}"
        return f"{color}{symbol}{self.RESET} {self.DIM}[{logger_name}]{self.RESET} {message}"


def setup_logging(json_mode: bool, level: int = logging.INFO, debug_mode: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if json_mode:
        formatter = JsonFormatter()
    else:
        formatter = ColoredFormatter(debug_mode=debug_mode)
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def confirm_large_result(total: int) -> bool:
    if not sys.stdin.isatty():
        LOG.warning("Not a terminal; refusing to collect %d issues without --yes.", total)
        return False
    answer = input(f"This query returns {total} issues. Continue? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Jira Cloud / Opsgenie command line client")
    parser.add_argument("--config", help="Path to configuration file (.toml/.yaml).")
    parser.add_argument("--log-json", action="store_true", help="Emit structured JSON logs.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--version", action="version", version=f"jira-cloud {VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Collect every issue matching a JQL query.")
    search.add_argument("jql", help="JQL predicate")
    search.add_argument("--output-dir", default=None, help="Write one JSON file per page into this directory.")
    search.add_argument("--output", default=None, help="Write the whole result to this JSON file.")
    search.add_argument("--yes", action="store_true", help="Skip the large result confirmation.")
    search.add_argument("--max-concurrency", type=int, default=None, help="Maximum page fetches in flight (default: 100).")

    changelog = sub.add_parser("changelog", help="Show the change history of an issue.")
    changelog.add_argument("issue")
    changelog.add_argument("--field", default=None, help="Only show changes to this field.")

    set_field = sub.add_parser("set-field", help="Set a field on an issue.")
    set_field.add_argument("issue")
    set_field.add_argument("field", help="Field name or id")
    set_field.add_argument("value")

    prop = sub.add_parser("property", help="Project property CRUD.")
    prop.add_argument("action", choices=["list", "get", "set", "delete"])
    prop.add_argument("project")
    prop.add_argument("key", nargs="?")
    prop.add_argument("value", nargs="?", help="JSON value for 'set'.")

    sub.add_parser("services", help="List Opsgenie services.")
    sub.add_parser("test-auth", help="Test Jira Cloud credentials and exit.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config_data = load_config(args.config)
    cli_settings: Dict[str, Dict[str, Any]] = {}
    if args.log_json:
        cli_settings.setdefault("logging", {})["json"] = True
    if args.debug:
        cli_settings.setdefault("logging", {})["debug"] = True
    if getattr(args, "max_concurrency", None) is not None:
        cli_settings.setdefault("collector", {})["max_concurrency"] = args.max_concurrency
    settings = merge_settings(config_data, cli_settings) if cli_settings else config_data

    logging_settings = settings.get("logging", {})
    debug_mode = bool(logging_settings.get("debug", False))
    setup_logging(bool(logging_settings.get("json", False)), level=logging.DEBUG if debug_mode else logging.INFO, debug_mode=debug_mode)
    _apply_http_settings(settings.get("http", {}))

    handlers = {
        "search": _run_search,
        "changelog": _run_changelog,
        "set-field": _run_set_field,
        "property": _run_property,
        "services": _run_services,
        "test-auth": _run_test_auth,
    }
    try:
        return handlers[args.command](args, settings)
    except Exception as exc:
        LOG.error("%s failed: %s", args.command, exc)
        if debug_mode:
            LOG.exception("Traceback")
        return 1


def _run_search(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    tuning = collector_settings(settings)
    api = common.jira_session(settings.get("jira", {}).get("site_base"))
    sink = PageFileSink(args.output_dir, api.base_url) if args.output_dir else None
    confirm = (lambda _total: True) if args.yes else confirm_large_result
    collector = JqlCollector(JiraSearchClient(api), settings=tuning, sink=sink, confirm_large_result=confirm)

    start = perf_counter()
    issues = collector.run(args.jql)
    LOG.info("Collected %d issues in %.2fs", len(issues), perf_counter() - start)
    if args.output:
        LOG.info("Results written: %s", export_results(issues, Path(args.output)))
    elif not args.output_dir:
        for issue in issues:
            print(issue.key)
    return 0


def _run_changelog(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    api = common.jira_session(settings.get("jira", {}).get("site_base"))
    for entry in get_changelog(api, args.issue, field=args.field, retry=_retry_policy(settings)):
        print(f"{entry.created}  {entry.author:20}  {entry.field}: {entry.from_string!r} -> {entry.to_string!r}")
    return 0


def _run_set_field(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    api = common.jira_session(settings.get("jira", {}).get("site_base"))
    set_issue_field(api, args.issue, args.field, args.value, retry=_retry_policy(settings))
    return 0


def _run_property(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    api = common.jira_session(settings.get("jira", {}).get("site_base"))
    retry = _retry_policy(settings)
    if args.action == "list":
        for key in list_project_properties(api, args.project, retry=retry):
            print(key)
        return 0
    if not args.key:
        LOG.error("Property key required for '%s'", args.action)
        return 2
    if args.action == "get":
        value = get_project_property(api, args.project, args.key, retry=retry)
        if value is None:
            LOG.warning("Property %s not found on %s", args.key, args.project)
            return 1
        print(json.dumps(value, indent=2, ensure_ascii=False))
    elif args.action == "set":
        if args.value is None:
            LOG.error("A JSON value is required for 'set'")
            return 2
        set_project_property(api, args.project, args.key, json.loads(args.value), retry=retry)
    else:
        delete_project_property(api, args.project, args.key, retry=retry)
    return 0


def _run_services(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    api = common.opsgenie_session(settings.get("opsgenie", {}).get("api_base"))
    for service in list_services(api, retry=_retry_policy(settings)):
        print(f"{service.get('id', '')}  {service.get('name', '')}")
    return 0


def _run_test_auth(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    """Test Jira Cloud credentials by calling the /myself endpoint."""
    api = common.jira_session(settings.get("jira", {}).get("site_base"))
    LOG.info("Testing credentials against %s...", api.base_url)
    resp = api.request("GET", "/rest/api/3/myself")
    if resp.status_code == 200:
        user_info = resp.json()
        LOG.info("Credentials validated successfully!")
        LOG.info("  Authenticated as: %s (%s)", user_info.get("displayName", "Unknown"), user_info.get("emailAddress", "N/A"))
        LOG.info("  Account ID: %s", user_info.get("accountId", "Unknown"))
        return 0
    if resp.status_code == 401:
        LOG.error("Authentication failed: check JIRA_CLOUD_EMAIL and JIRA_CLOUD_API_TOKEN in .env")
    elif resp.status_code == 403:
        LOG.error("Authorization failed: API token may lack required scopes")
    else:
        LOG.error("Unexpected response: HTTP %d %s", resp.status_code, resp.text[:200])
    return 1


def _retry_policy(settings: Dict[str, Any]) -> RetryPolicy:
    tuning = collector_settings(settings)
    return RetryPolicy(interval=tuning.rate_limit_interval, max_attempts=tuning.rate_limit_max_attempts)


def _apply_http_settings(http_settings: Dict[str, object]) -> None:
    """Copy the [http] section onto utils.common, where get_session reads it."""
    timeout = http_settings.get("timeout")
    if isinstance(timeout, (int, float)):
        common.API_TIMEOUT = int(timeout)
    pool_size = http_settings.get("pool_size")
    if isinstance(pool_size, int) and pool_size > 0:
        common.HTTP_POOL_SIZE = pool_size
    max_retries = http_settings.get("max_retries")
    if isinstance(max_retries, int) and max_retries >= 0:
        common.HTTP_MAX_RETRIES = max_retries
    backoff = http_settings.get("backoff")
    if isinstance(backoff, (int, float)) and backoff >= 0:
        common.HTTP_BACKOFF_FACTOR = float(backoff)
    # Rebuild the shared session with the new pool/retry values.
    reset_session()


if __name__ == "__main__":
    sys.exit(main())

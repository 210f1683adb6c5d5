import logging
from typing import Any, Dict, List, Optional

from utils.http import ApiSession
from utils.retry import RetryPolicy, request_with_retry

LOG = logging.getLogger("JiraCloud.services")

SERVICES_PATH = "/v1/services"


def list_services(api: ApiSession, page_size: int = 100, retry: Optional[RetryPolicy] = None) -> List[Dict[str, Any]]:
    """
    Collect every Opsgenie service via /v1/services.

    Pages are read one after another until a short page or a page without a
    ``paging.next`` link.
    """
    offset = 0
    page_num = 1
    services: List[Dict[str, Any]] = []

    while True:
        params = {"limit": page_size, "offset": offset}
        resp = request_with_retry(api, "GET", SERVICES_PATH, policy=retry, context="Opsgenie services", params=params)
        resp.raise_for_status()
        data = resp.json()
        page = data.get("data", []) or []
        services.extend(page)

        LOG.info("Fetched %d services (total: %d) • page %d", len(page), len(services), page_num)

        if len(page) < page_size or not (data.get("paging") or {}).get("next"):
            break
        offset += page_size
        page_num += 1

    LOG.info("Service collection complete. Total: %d services", len(services))
    return services

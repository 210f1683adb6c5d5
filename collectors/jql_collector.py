"""
JiraCloud - JQL query collector

Runs a JQL search against Jira Cloud and pages through every result:

1. a one-issue count query reads the total result count (retried while rate limited),
2. oversized result sets need confirmation from the caller,
3. pages are fetched on a bounded thread pool, one request per offset, with a
   fixed pause between dispatches,
4. each page is optionally written to disk as it arrives, and all pages are
   merged into one list in arrival order.

Rate-limited responses (HTTP 429) are retried in place and never merged. Any
other HTTP or network error propagates and aborts the collection.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Protocol

from utils.export import PageFileSink
from utils.http import ApiSession, handle_http_error, is_rate_limited
from utils.models import CollectionJob, CollectorSettings, Issue, JobState, SearchPage, SearchRequest
from utils.retry import RetryPolicy

LOG = logging.getLogger("JiraCloud.collector")

SEARCH_PATH = "/rest/api/3/search"
COUNT_FIELDS = ("key",)

ConfirmCallback = Callable[[int], bool]


class SearchClient(Protocol):
    def search(self, request: SearchRequest) -> SearchPage: ...


class JiraSearchClient:
    """POSTs SearchRequests to the Jira Cloud search endpoint."""

    def __init__(self, api: ApiSession) -> None:
        self.api = api

    def search(self, request: SearchRequest) -> SearchPage:
        resp = self.api.request("POST", SEARCH_PATH, json=request.to_body())
        if is_rate_limited(resp):
            return SearchPage.rate_limited()
        if not resp.ok:
            handle_http_error(resp, "JQL search")
            resp.raise_for_status()
        return SearchPage.from_json(resp.json())


def page_offsets(total: int, page_size: int) -> List[int]:
    return list(range(0, max(total, 0), page_size))


class JqlCollector:
    def __init__(
        self,
        client: SearchClient,
        settings: Optional[CollectorSettings] = None,
        sink: Optional[PageFileSink] = None,
        confirm_large_result: Optional[ConfirmCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.settings = settings or CollectorSettings()
        self.sink = sink
        self.confirm_large_result = confirm_large_result
        self._sleep = sleep
        self.retry = RetryPolicy(
            interval=self.settings.rate_limit_interval,
            max_attempts=self.settings.rate_limit_max_attempts,
            sleep=sleep,
        )

    def run(self, predicate: str) -> List[Issue]:
        """Validate, confirm if needed, then collect every page of ``predicate``."""
        total = self.validate(predicate)
        if total == 0:
            LOG.info("JQL query returned no issues.")
            return []
        if total > self.settings.warning_limit:
            LOG.warning(
                "JQL query matches %d issues, above the %d issue warning limit.",
                total,
                self.settings.warning_limit,
            )
            if not self._confirm(total):
                LOG.info("Collection of %d issues declined.", total)
                return []
        return self.collect(predicate, total)

    def validate(self, predicate: str) -> int:
        count_query = SearchRequest(predicate, page_size=1, offset=0, field_selector=COUNT_FIELDS)
        page = self.retry.call(
            lambda: self.client.search(count_query),
            lambda result: result.is_rate_limited,
            context="JQL count",
        )
        LOG.info("JQL query matches %d issues.", page.total_count)
        return page.total_count

    def collect(self, predicate: str, total: int) -> List[Issue]:
        offsets = page_offsets(total, self.settings.page_size)
        if not offsets:
            return []

        cap = self.settings.max_concurrency
        slots = threading.BoundedSemaphore(cap)
        jobs: Dict[Future, CollectionJob] = {}
        aggregate: List[Issue] = []

        LOG.info("Fetching %d pages of %d issues (max %d in flight).", len(offsets), self.settings.page_size, cap)
        with ThreadPoolExecutor(max_workers=cap, thread_name_prefix="jql-page") as executor:
            for index, offset in enumerate(offsets):
                if index:
                    self._sleep(self.settings.dispatch_delay)
                slots.acquire()
                self._raise_if_failed(jobs)
                job = CollectionJob(
                    SearchRequest(
                        predicate,
                        page_size=self.settings.page_size,
                        offset=offset,
                        field_selector=self.settings.field_selector,
                    )
                )
                future = executor.submit(self._fetch_page, job, total)
                future.add_done_callback(lambda _done: slots.release())
                jobs[future] = job

            completed = 0
            for future in as_completed(list(jobs)):
                job = jobs.pop(future)
                if future.exception() is not None:
                    LOG.error(
                        "Page at offset %d failed: %s; aborting after %d in-flight pages finish.",
                        job.offset,
                        future.exception(),
                        sum(1 for pending in jobs if not pending.done()),
                    )
                page = future.result()
                aggregate.extend(page.items)
                completed += 1
                LOG.debug("Merged page at offset %d (%d/%d)", job.offset, completed, len(offsets))

        LOG.info("Collected %d issues from %d pages.", len(aggregate), len(offsets))
        return aggregate

    def _fetch_page(self, job: CollectionJob, expected_total: int) -> SearchPage:
        job.state = JobState.RUNNING

        def _send() -> SearchPage:
            job.attempts += 1
            return self.client.search(job.request)

        try:
            page = self.retry.call(_send, lambda result: result.is_rate_limited, context=f"Page at offset {job.offset}")
            if page.total_count != expected_total:
                LOG.warning(
                    "Page at offset %d reports %d issues, the count query reported %d; keeping the first count.",
                    job.offset,
                    page.total_count,
                    expected_total,
                )
            if self.sink is not None:
                self.sink.write(job.offset, page.items)
        except Exception:
            job.state = JobState.FAILED
            raise
        job.result = page
        job.state = JobState.COMPLETED
        return page

    def _confirm(self, total: int) -> bool:
        if self.confirm_large_result is None:
            return False
        return bool(self.confirm_large_result(total))

    @staticmethod
    def _raise_if_failed(jobs: Dict[Future, CollectionJob]) -> None:
        for future, job in jobs.items():
            if future.done() and future.exception() is not None:
                LOG.error("Page at offset %d failed; stopping dispatch.", job.offset)
                future.result()


def get_jql_query_results(
    api: ApiSession,
    jql: str,
    output_dir: Optional[str] = None,
    confirm_large_result: Optional[ConfirmCallback] = None,
    settings: Optional[CollectorSettings] = None,
) -> List[Issue]:
    """Return every issue matching ``jql``; optionally write one JSON file per page."""
    sink = PageFileSink(output_dir, api.base_url) if output_dir else None
    collector = JqlCollector(
        JiraSearchClient(api),
        settings=settings,
        sink=sink,
        confirm_large_result=confirm_large_result,
    )
    return collector.run(jql)

"""
San Diego County court client: the entry points used by the application.

    client = CountyCourtClient()
    records = client.search_cases("Larson", SearchKind.NAME)
    record = client.get_case_details("22FL001581C")
    refreshed = client.update_tracked_cases(["22FL001581C", "FL-2024-123456"])
    client.get_rate_limit_status()

search_cases() walks the strategy chain (see strategies.py). Individual
strategy failures are logged and skipped; only when every strategy failed
at the transport level does the caller get AggregatedSearchFailure.
Deadline expiry and cancellation always propagate unchanged.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from config import ClientConfig
from deadline import Deadline
from detail_parsers import parse_calendar_events, parse_case_details
from models import CalendarEvent, CaseRecord, RateLimitStatus, SearchKind, is_case_number
from rate_limiter import SlidingWindowRateLimiter
from strategies import SearchStrategy, default_strategies
from transport import CourtTransport, TransportError

logger = logging.getLogger(__name__)

SEARCH_FAILURE_MESSAGE = "Unable to search county records at this time."
DETAILS_FAILURE_MESSAGE = "Unable to retrieve case details at this time"
CALENDAR_FAILURE_MESSAGE = "Unable to sync court calendar at this time"


class AggregatedSearchFailure(Exception):
    """Every strategy failed. The message is for end users; see __cause__ for detail."""

    def __init__(self, message: str = SEARCH_FAILURE_MESSAGE, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class CaseDetailsError(Exception):
    """The case detail page could not be fetched."""


class CalendarSyncError(Exception):
    """The court calendar could not be fetched."""


CaseHook = Callable[[CaseRecord], None]


class CountyCourtClient:
    """
    Rate-limited, multi-strategy client for the county's case search.

    Collaborators are injectable: pass a fake transport, a limiter on a fake
    clock, or a custom strategy list in tests. `on_case_updated` is called
    with every record refreshed by update_tracked_cases().
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: CourtTransport | None = None,
        limiter: SlidingWindowRateLimiter | None = None,
        strategies: list[SearchStrategy] | None = None,
        on_case_updated: CaseHook | None = None,
    ):
        self.config = config or ClientConfig.from_env()
        self.transport = transport or CourtTransport(self.config)
        self.limiter = limiter or SlidingWindowRateLimiter(
            limit=self.config.rate_limit,
            window_ms=self.config.rate_window_ms,
        )
        if strategies is None:
            strategies = default_strategies(self.transport, self.limiter, self.config)
        self.strategies = strategies
        self._on_case_updated = on_case_updated

    # =======================================================================
    # Search
    # =======================================================================

    def search_cases(
        self,
        query: str,
        kind: SearchKind | str = SearchKind.ALL,
        deadline: Deadline | None = None,
    ) -> list[CaseRecord]:
        """
        Search the county for query, trying each strategy in order.

        Returns:
            Records from the first strategy that found any, else [].

        Raises:
            ValueError: blank query or unknown kind.
            AggregatedSearchFailure: every strategy raised TransportError.
            DeadlineExceeded / SearchCancelled: from the deadline.
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("search query must not be blank")
        kind = SearchKind(kind)

        logger.info(f"Searching county records for {query!r} (kind={kind.value})")
        self.limiter.admit(deadline)

        if kind == SearchKind.CASE_NUMBER and not is_case_number(query):
            logger.info(f"Invalid case number format: {query!r}")
            return []

        failures = 0
        last_error: TransportError | None = None
        for strategy in self.strategies:
            try:
                records = strategy.search(query, kind, deadline=deadline)
            except TransportError as e:
                failures += 1
                last_error = e
                logger.warning(f"[{strategy.name}] failed: {e}")
                continue

            if records:
                low = sum(1 for r in records if r.confidence == "low")
                logger.info(
                    f"[{strategy.name}] returned {len(records)} record(s)"
                    + (f", {low} low-confidence" if low else "")
                )
                return records
            logger.info(f"[{strategy.name}] returned no records")

        if self.strategies and failures == len(self.strategies):
            logger.error(f"All {failures} search strategies failed for {query!r}")
            raise AggregatedSearchFailure(attempts=failures) from last_error

        logger.info(f"No records found for {query!r}")
        return []

    # =======================================================================
    # Details, calendar, tracking
    # =======================================================================

    def get_case_details(self, case_number: str, deadline: Deadline | None = None) -> CaseRecord:
        """
        Fetch and parse a single case's detail page.

        Raises:
            CaseDetailsError: the page could not be fetched.
        """
        case_number = case_number.strip()
        self.limiter.admit(deadline)
        try:
            result = self.transport.fetch(
                self.config.search_url,
                params={"caseNumber": case_number},
                headers={"Referer": self.config.search_url},
                deadline=deadline,
            )
        except TransportError as e:
            logger.error(f"Case details for {case_number} failed: {e}")
            raise CaseDetailsError(DETAILS_FAILURE_MESSAGE) from e
        return parse_case_details(result.text, case_number)

    def get_calendar_events(
        self,
        start_date: str,
        end_date: str,
        deadline: Deadline | None = None,
    ) -> list[CalendarEvent]:
        """
        Court calendar events between two ISO dates (best effort).

        Raises:
            CalendarSyncError: the calendar page could not be fetched.
        """
        self.limiter.admit(deadline)
        try:
            result = self.transport.fetch(
                self.config.calendar_url,
                params={
                    "_nfpb": "true",
                    "_pageLabel": "portal_portal_page_3",
                    "_nfls": "false",
                    "startDate": start_date,
                    "endDate": end_date,
                },
                headers={"Referer": self.config.calendar_url},
                deadline=deadline,
            )
        except TransportError as e:
            logger.error(f"Calendar sync {start_date}..{end_date} failed: {e}")
            raise CalendarSyncError(CALENDAR_FAILURE_MESSAGE) from e
        return parse_calendar_events(result.text)

    def update_tracked_cases(
        self,
        case_numbers: Iterable[str],
        deadline: Deadline | None = None,
    ) -> list[CaseRecord]:
        """
        Re-fetch each tracked case, one at a time, in input order.

        A case that cannot be fetched is logged and skipped; the returned
        list holds every case that could.
        """
        updated = []
        errors = 0
        for case_number in case_numbers:
            try:
                record = self.get_case_details(case_number, deadline=deadline)
            except CaseDetailsError as e:
                errors += 1
                logger.warning(f"Failed to update case {case_number}: {e.__cause__ or e}")
                continue

            updated.append(record)
            try:
                self.on_case_updated(record)
            except Exception as e:
                logger.error(f"Update hook failed for {record.case_number}: {e}", exc_info=True)

        logger.info(f"Tracked case update done. Updated: {len(updated)}, Errors: {errors}")
        return updated

    def on_case_updated(self, record: CaseRecord) -> None:
        """
        Change-detection hook, called after each tracked case is refreshed.

        Does nothing beyond logging unless a callback was given to the
        constructor; subclasses may override.
        """
        if self._on_case_updated is not None:
            self._on_case_updated(record)
        else:
            logger.debug(f"Checked case {record.case_number} for updates")

    # =======================================================================
    # Introspection / lifecycle
    # =======================================================================

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self.limiter.status()

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "CountyCourtClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

"""
Retrieval strategies for the county case search.

Each strategy is one independent way of asking the court for the same
query. The coordinator (county_client.CountyCourtClient) runs them in a
fixed order and stops at the first that yields records:

1. FormSubmissionStrategy  - fetch the public search form, replay its
                             hidden fields, submit the query (2 requests)
2. SecondaryEndpointStrategy - ROA search host with forwarded-IP headers
                             (1 request)
3. GenericEndpointStrategy - a short list of ?search= URLs (1 request each)

Every network round trip takes one permit from the shared rate limiter,
retries included: a retried request asks for a fresh permit.
A strategy signals failure by raising TransportError; an empty list means
the request worked but nothing was found.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod

from config import ClientConfig
from deadline import Deadline
from extraction import (
    convert_json_results,
    detect_search_type,
    extract_search_form,
    parse_search_results,
)
from models import CaseRecord, SearchKind
from rate_limiter import SlidingWindowRateLimiter
from transport import CourtTransport, FetchResult, TransportError

logger = logging.getLogger(__name__)

# Input names used by the court's search forms, by detected query type.
FIELD_NAMES = {
    SearchKind.CASE_NUMBER: "caseNumber",
    SearchKind.ATTORNEY: "attorneyName",
    SearchKind.NAME: "partyName",
}

FORWARDED_IP_HEADERS = (
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Client-IP",
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Original-Forwarded-For",
)


def field_name_for(query: str, kind: SearchKind | str) -> str:
    return FIELD_NAMES[detect_search_type(query, kind)]


class SearchStrategy(ABC):
    """
    Abstract base for all retrieval strategies.

    Subclasses implement search(); network access goes through fetch() so
    the rate limiter is consulted before every request.
    """

    name: str = "strategy"

    RETRY_TOTAL: int = 2
    RETRY_BACKOFF: float = 1.0

    def __init__(
        self,
        transport: CourtTransport,
        limiter: SlidingWindowRateLimiter,
        config: ClientConfig | None = None,
        sleep=time.sleep,
    ):
        self.transport = transport
        self.limiter = limiter
        self.config = config or transport.config
        self._sleep = sleep

    def fetch(self, url: str, deadline: Deadline | None = None, **kwargs) -> FetchResult:
        """
        Rate-limited request with retry on 429/5xx and network errors.

        Each attempt takes its own permit, so the limiter counts every
        request that reaches the court. Backoff doubles per attempt and is
        clamped by the deadline.
        """
        attempt = 0
        while True:
            self.limiter.admit(deadline)
            try:
                return self.transport.fetch(url, deadline=deadline, **kwargs)
            except TransportError as e:
                if not e.retryable or attempt >= self.RETRY_TOTAL:
                    raise
                pause = self.RETRY_BACKOFF * (2 ** attempt)
                attempt += 1
                if deadline is not None:
                    pause = deadline.clamp_timeout(pause)
                logger.warning(
                    f"[{self.name}] {e}; retry {attempt}/{self.RETRY_TOTAL} in {pause:.1f}s"
                )
                self._sleep(pause)

    def parse(self, result: FetchResult, query: str) -> list[CaseRecord]:
        """Records from a response body, JSON or HTML."""
        if result.looks_like_json:
            try:
                payload = json.loads(result.text)
            except ValueError as e:
                logger.debug(f"[{self.name}] Body looked like JSON but is not: {e}")
            else:
                records = convert_json_results(payload, query, source=self.name)
                if records:
                    return records
        return parse_search_results(result.text, query, source=self.name)

    @abstractmethod
    def search(self, query: str, kind: SearchKind, deadline: Deadline | None = None) -> list[CaseRecord]:
        """
        Run the query through this access path.

        Returns:
            Records found (possibly empty).

        Raises:
            TransportError: when the access path itself failed.
        """
        ...


class FormSubmissionStrategy(SearchStrategy):
    """
    Emulate a browser using the public online case search form.

    The form page carries hidden anti-forgery/session fields that must be
    replayed unchanged, so the form is fetched fresh for every search.
    """

    name = "form_submission"

    def search(self, query: str, kind: SearchKind, deadline: Deadline | None = None) -> list[CaseRecord]:
        base = self.config.base_url
        form_page = self.fetch(
            self.config.search_url,
            headers={"Referer": f"{base}/sdcourt/generalinformation/courtrecords2/"},
            deadline=deadline,
        )

        field = field_name_for(query, kind)
        form = extract_search_form(form_page.text, form_page.url, FIELD_NAMES.values())
        data = dict(form.hidden_fields)
        data[field] = query
        logger.info(
            f"[{self.name}] {form.method} {form.action} with {field}={query!r} "
            f"and {len(form.hidden_fields)} hidden field(s)"
        )

        headers = {"Referer": form_page.url, "Origin": base}
        if form.method == "GET":
            result = self.fetch(form.action, params=data, headers=headers, deadline=deadline)
        else:
            result = self.fetch(form.action, method="POST", data=data, headers=headers, deadline=deadline)
        return self.parse(result, query)


class SecondaryEndpointStrategy(SearchStrategy):
    """Register of Actions search host, presenting the whitelisted client IP."""

    name = "secondary_endpoint"

    def search(self, query: str, kind: SearchKind, deadline: Deadline | None = None) -> list[CaseRecord]:
        roa = self.config.roa_base_url
        headers = {header: self.config.forwarded_ip for header in FORWARDED_IP_HEADERS}
        headers["Referer"] = roa + "/"
        field = field_name_for(query, kind)
        result = self.fetch(
            roa + "/Parties",
            params={field: query},
            headers=headers,
            deadline=deadline,
        )
        return self.parse(result, query)


class GenericEndpointStrategy(SearchStrategy):
    """
    Plain ?search= endpoints, tried in order.

    A failing URL is logged and the next one tried; the strategy only fails
    when every URL failed.
    """

    name = "generic_endpoint"

    def candidate_urls(self) -> list[str]:
        return [
            f"{self.config.base_url}/search",
            self.config.search_url,
        ]

    def search(self, query: str, kind: SearchKind, deadline: Deadline | None = None) -> list[CaseRecord]:
        urls = self.candidate_urls()
        last_error: TransportError | None = None
        failures = 0
        for url in urls:
            try:
                result = self.fetch(
                    url,
                    params={"search": query},
                    headers={"Referer": self.config.base_url + "/"},
                    deadline=deadline,
                )
            except TransportError as e:
                failures += 1
                last_error = e
                logger.warning(f"[{self.name}] {url} failed: {e}")
                continue
            records = self.parse(result, query)
            if records:
                return records
        if urls and failures == len(urls):
            raise last_error
        return []


def default_strategies(
    transport: CourtTransport,
    limiter: SlidingWindowRateLimiter,
    config: ClientConfig,
) -> list[SearchStrategy]:
    """The fixed priority order."""
    return [
        FormSubmissionStrategy(transport, limiter, config),
        SecondaryEndpointStrategy(transport, limiter, config),
        GenericEndpointStrategy(transport, limiter, config),
    ]

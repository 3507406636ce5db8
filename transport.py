"""
HTTP transport for the county court sites.

Provides:
- A requests.Session that looks like a desktop browser (the court has no
  public API; everything is HTML-form emulation, so headers matter)
- No resends at the adapter level: retries belong to the caller, which
  takes a fresh rate-limiter permit for every attempt
- Optional proxy with credential redaction in logs
- TransportError for every non-2xx response or network failure

The transport does not rate-limit. Callers take a permit from the
SlidingWindowRateLimiter before every fetch().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import ClientConfig
from deadline import Deadline, DeadlineExceeded, check

logger = logging.getLogger(__name__)

# Statuses worth another attempt. Network errors are retryable too.
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class TransportError(Exception):
    """A single request failed: non-2xx status or network-level error."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code in RETRYABLE_STATUSES


@dataclass
class FetchResult:
    status: int
    text: str
    url: str
    content_type: str = ""

    @property
    def looks_like_json(self) -> bool:
        if "application/json" in self.content_type:
            return True
        head = self.text.lstrip()[:1]
        return head in ("{", "[")


def _redact_proxy_url(proxy_url: str) -> str:
    """Mask proxy credentials before logging."""
    try:
        parsed = urlsplit(proxy_url)
        if "@" not in parsed.netloc:
            return proxy_url

        creds, host = parsed.netloc.rsplit("@", 1)
        user = creds.split(":", 1)[0]
        safe_creds = f"{user}:***" if ":" in creds else "***"
        return urlunsplit(
            (parsed.scheme, f"{safe_creds}@{host}", parsed.path, parsed.query, parsed.fragment)
        )
    except ValueError:
        return "<redacted>"


class CourtTransport:
    """Browser-like HTTP client. One instance per CountyCourtClient."""

    def __init__(self, config: ClientConfig | None = None, session: requests.Session | None = None):
        self.config = config or ClientConfig()
        self.session = session or self._build_session()

    def _build_session(self) -> requests.Session:
        """Build an HTTP session with browser headers and no automatic resends."""
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": self.config.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
                "Connection": "keep-alive",
            }
        )

        if self.config.proxy:
            session.proxies = {"http": self.config.proxy, "https": self.config.proxy}
            logger.info(f"Using proxy: {_redact_proxy_url(self.config.proxy)}")

        # Every request on the wire must have passed the limiter.
        retry = Retry(total=0, raise_on_status=False)
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        deadline: Deadline | None = None,
    ) -> FetchResult:
        """
        Issue one request and return its body.

        Raises:
            TransportError: on non-2xx status or any requests exception.
            DeadlineExceeded / SearchCancelled: if the deadline is already spent.
        """
        check(deadline)
        timeout = self.config.timeout
        if deadline is not None:
            timeout = deadline.clamp_timeout(timeout)
            if timeout <= 0:
                raise DeadlineExceeded(f"No time left to fetch {url}")

        method = method.upper()
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=data,
                params=params,
                timeout=timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}", url=url) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                url=url,
            )

        return FetchResult(
            status=response.status_code,
            text=response.text,
            url=response.url or url,
            content_type=response.headers.get("content-type", ""),
        )

    def close(self) -> None:
        self.session.close()

"""
Client configuration: class defaults overridable from the environment.

Environment variables:
    COURT_BASE_URL        main court site (default https://www.sdcourt.ca.gov)
    COURT_ROA_URL         Register of Actions search host
    COURT_RATE_LIMIT      requests per window (default 450)
    COURT_RATE_WINDOW_MS  window length in ms (default 10000)
    COURT_TIMEOUT         per-request timeout in seconds (default 30)
    COURT_FORWARDED_IP    whitelisted address sent in forwarded-IP headers
    COURT_PROXY           HTTP/SOCKS proxy URL (e.g. socks5h://127.0.0.1:1080)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = "https://www.sdcourt.ca.gov"
    roa_base_url: str = "https://roasearch.sdcourt.ca.gov"
    search_path: str = "/sdcourt/generalinformation/courtrecords2/onlinecasesearch"
    calendar_path: str = "/portal/portal.portal"

    rate_limit: int = 450
    rate_window_ms: int = 10_000

    timeout: float = 30.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    forwarded_ip: str = "216.150.1.65"
    proxy: str = ""

    @property
    def search_url(self) -> str:
        return self.base_url + self.search_path

    @property
    def calendar_url(self) -> str:
        return self.base_url + self.calendar_path

    @classmethod
    def from_env(cls, environ=None) -> "ClientConfig":
        """Defaults with any COURT_* environment overrides applied."""
        env = os.environ if environ is None else environ
        config = cls()
        overrides: dict = {}
        if env.get("COURT_BASE_URL"):
            overrides["base_url"] = env["COURT_BASE_URL"].rstrip("/")
        if env.get("COURT_ROA_URL"):
            overrides["roa_base_url"] = env["COURT_ROA_URL"].rstrip("/")
        if env.get("COURT_RATE_LIMIT"):
            overrides["rate_limit"] = int(env["COURT_RATE_LIMIT"])
        if env.get("COURT_RATE_WINDOW_MS"):
            overrides["rate_window_ms"] = int(env["COURT_RATE_WINDOW_MS"])
        if env.get("COURT_TIMEOUT"):
            overrides["timeout"] = float(env["COURT_TIMEOUT"])
        if env.get("COURT_FORWARDED_IP"):
            overrides["forwarded_ip"] = env["COURT_FORWARDED_IP"]
        if env.get("COURT_PROXY"):
            overrides["proxy"] = env["COURT_PROXY"]
        return replace(config, **overrides)

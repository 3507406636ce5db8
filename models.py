"""
Unified schema for San Diego Superior Court case records.
All strategies and parsers must produce CaseRecord objects conforming to this schema.

Field names are snake_case in Python; the camelCase aliases are the wire
contract used by the calling application (model_dump(by_alias=True)).
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DEPARTMENT = "San Diego Superior Court"
UNKNOWN = "Unknown"


def today_iso() -> str:
    return date.today().isoformat()


class SearchKind(str, Enum):
    """What the caller believes the query is."""

    NAME = "name"
    CASE_NUMBER = "caseNumber"
    ATTORNEY = "attorney"
    ALL = "all"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VirtualInfo(_WireModel):
    zoom_id: str = Field(..., alias="zoomId")
    passcode: str = ""


class CalendarEvent(_WireModel):
    """A hearing or deadline on the court calendar."""

    date: str
    time: str = ""
    event_type: str = Field("", alias="eventType")
    department: str = ""
    judge: str = UNKNOWN
    description: str = ""
    virtual_info: Optional[VirtualInfo] = Field(None, alias="virtualInfo")


class DocketAction(_WireModel):
    """One entry of the Register of Actions."""

    date: str
    action: str
    description: str = ""
    filed_by: str = Field(UNKNOWN, alias="filedBy")


class CaseRecord(_WireModel):
    """A single case as seen through the county's search pages."""

    # === Identity ===
    case_number: str = Field(
        ...,
        alias="caseNumber",
        description="Court case number, e.g. 22FL001581C or FL-2024-123456. "
        "SEARCH-<millis> when synthesised from keyword evidence only.",
    )

    # === Caption / classification ===
    title: str = Field(..., description="Case caption, e.g. 'Larson vs Larson'")
    case_type: str = Field(UNKNOWN, alias="caseType")
    status: str = "Active"

    # === Dates (ISO YYYY-MM-DD) ===
    date_filed: str = Field(default_factory=today_iso, alias="dateFiled")
    # The search page never shows true last activity; always extraction day.
    last_activity: str = Field(default_factory=today_iso, alias="lastActivity")

    # === Venue ===
    department: str = DEFAULT_DEPARTMENT
    judge: str = UNKNOWN

    parties: list[str] = Field(default_factory=list)
    upcoming_events: list[CalendarEvent] = Field(default_factory=list, alias="upcomingEvents")
    register_of_actions: list[DocketAction] = Field(default_factory=list, alias="registerOfActions")

    # === Provenance ===
    confidence: str = Field(
        "high",
        pattern=r"^(high|low)$",
        description="'low' when the record rests on defaults or keyword evidence only",
    )
    source: Optional[str] = Field(None, description="Strategy or parser that produced the record")
    note: Optional[str] = None

    @field_validator("parties")
    @classmethod
    def dedupe_parties(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for party in v:
            party = party.strip()
            if party and party not in seen:
                seen.append(party)
        return seen


class RateLimitStatus(_WireModel):
    current: int
    limit: int
    reset_time: int = Field(..., alias="resetTime", description="Epoch milliseconds")


# ============================================================
# Case number helpers
# ============================================================

# 22FL001581C: two-digit year, two-letter type, six-digit sequence, optional suffix
COMPACT_CASE_NUMBER = re.compile(r"^\d{2}[A-Z]{2}\d{6}[A-Z]?$", re.IGNORECASE)
# FL-2024-123456: type, four-digit year, 4-8 digit sequence
DASHED_CASE_NUMBER = re.compile(r"^[A-Z]{2}-\d{4}-\d{4,8}$", re.IGNORECASE)


def is_case_number(text: str) -> bool:
    """True if text has one of the San Diego case-number shapes."""
    text = (text or "").strip()
    return bool(COMPACT_CASE_NUMBER.match(text) or DASHED_CASE_NUMBER.match(text))


_CASE_TYPE_CODES = {
    "FL": "Family Law",
    "CR": "Criminal",
    "CV": "Civil",
    "SC": "Small Claims",
    "TR": "Traffic",
    "JC": "Juvenile",
    "AD": "Administrative",
    "AP": "Appeals",
    "GU": "Guardianship",
    "MH": "Mental Health",
    "PR": "Probate",
    "SB": "Superior Court Business",
    "SS": "Superior Court Special",
    "ST": "Superior Court Special",
    "WS": "Workers Compensation",
}

_TYPE_CODE = re.compile(r"^(?:\d{2}([A-Z]{2})\d|([A-Z]{2})-\d{4}-)", re.IGNORECASE)


def case_type_for_number(case_number: str) -> str:
    """
    Derive the case type from the two-letter code in a case number.

    '22FL001581C'    -> 'Family Law'
    'CR-2023-000123' -> 'Criminal'
    """
    m = _TYPE_CODE.match((case_number or "").strip())
    if not m:
        return UNKNOWN
    code = (m.group(1) or m.group(2)).upper()
    return _CASE_TYPE_CODES.get(code, UNKNOWN)


# ============================================================
# Date normalization
# ============================================================

_US_DATE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


def parse_date(text: str) -> date | None:
    """Parse MM/DD/YYYY or YYYY-MM-DD; None if neither is present or valid."""
    if not text:
        return None
    m = _US_DATE.search(text)
    if m:
        try:
            return date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
        except ValueError:
            return None
    m = _ISO_DATE.search(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None
    return None


def normalize_date(text: str) -> str:
    """ISO date for text, falling back to today when unparsable."""
    parsed = parse_date(text)
    return parsed.isoformat() if parsed else today_iso()

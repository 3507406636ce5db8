"""
Best-effort parsers for case-detail and calendar pages.

Both page types are tables of dated rows. A dated row with a clock time is
read as a calendar event (hearing); a dated row without one is read as a
Register of Actions entry. Anything else is ignored. These parsers are
partial: unknown layouts produce empty lists and default
fields, never exceptions.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup

from extraction import (
    TITLE,
    context_window,
    extract_fields,
    extract_parties,
    markup_to_text,
)
from models import (
    UNKNOWN,
    CalendarEvent,
    CaseRecord,
    DocketAction,
    VirtualInfo,
    case_type_for_number,
    normalize_date,
    parse_date,
    today_iso,
)

logger = logging.getLogger(__name__)

RE_DATE_CELL = re.compile(r"^\s*(\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2})\b")
RE_TIME = re.compile(r"\b(\d{1,2}:\d{2}\s*(?:[AaPp]\.?[Mm]\.?)?)")
RE_ZOOM_ID = re.compile(r"Zoom\s*(?:Meeting\s*)?ID[:#\s]*(\d[\d\s]{8,13}\d)", re.IGNORECASE)
RE_PASSCODE = re.compile(r"Pass(?:code|word)[:#\s]*([A-Za-z0-9]+)", re.IGNORECASE)
RE_DEPT_CELL = re.compile(r"^(?:Dept\.?|Department)?\s*[A-Z]?-?\d{1,4}[A-Z]?$", re.IGNORECASE)


def _table_rows(html: str) -> list[list[str]]:
    """Cell texts of every <tr>, whitespace-normalised, empty cells dropped."""
    soup = BeautifulSoup(html or "", "html.parser")
    rows = []
    for tr in soup.find_all("tr"):
        cells = []
        for cell in tr.find_all(["td", "th"]):
            text = re.sub(r"\s+", " ", cell.get_text(" ")).strip()
            if text and len(text) < 500:
                cells.append(text)
        if cells:
            rows.append(cells)
    return rows


def _dated_rows(html: str) -> list[tuple[str, list[str]]]:
    """(iso date, remaining cells) for rows whose first cell is a date."""
    dated = []
    for cells in _table_rows(html):
        m = RE_DATE_CELL.match(cells[0])
        if not m or parse_date(m.group(1)) is None:
            continue
        dated.append((normalize_date(m.group(1)), cells[1:]))
    return dated


def _virtual_info(text: str) -> VirtualInfo | None:
    zoom = RE_ZOOM_ID.search(text)
    if not zoom:
        return None
    passcode = RE_PASSCODE.search(text)
    return VirtualInfo(
        zoom_id=re.sub(r"\s+", "", zoom.group(1)),
        passcode=passcode.group(1) if passcode else "",
    )


def _event_from_row(day: str, cells: list[str]) -> CalendarEvent | None:
    row_text = " ".join(cells)
    time_match = RE_TIME.search(row_text)
    if not time_match:
        return None

    rest = [c for c in cells if c != time_match.group(1) and not RE_TIME.fullmatch(c.strip())]
    department = next((c for c in rest if RE_DEPT_CELL.match(c)), "")
    judge = next((c for c in rest if re.search(r"\b(?:Judge|Hon\.?|Commissioner)\b", c, re.IGNORECASE)), UNKNOWN)
    others = [c for c in rest if c not in (department, judge)]

    return CalendarEvent(
        date=day,
        time=time_match.group(1).upper(),
        event_type=others[0] if others else "",
        department=department,
        judge=judge,
        description=" ".join(others[1:]) if len(others) > 1 else (others[0] if others else ""),
        virtual_info=_virtual_info(row_text),
    )


def parse_calendar_events(html: str) -> list[CalendarEvent]:
    """Hearings from a calendar listing (dated rows carrying a time)."""
    events = []
    for day, cells in _dated_rows(html):
        event = _event_from_row(day, cells)
        if event:
            events.append(event)
    logger.debug(f"Parsed {len(events)} calendar events")
    return events


def parse_register_of_actions(html: str) -> list[DocketAction]:
    """Register of Actions entries (dated rows without a time)."""
    actions = []
    for day, cells in _dated_rows(html):
        if not cells or RE_TIME.search(" ".join(cells)):
            continue
        actions.append(
            DocketAction(
                date=day,
                action=cells[0],
                description=cells[1] if len(cells) > 1 else "",
                filed_by=cells[2] if len(cells) > 2 else UNKNOWN,
            )
        )
    return actions


def parse_case_details(html: str, case_number: str) -> CaseRecord:
    """
    Single-case detail page -> CaseRecord.

    A best-effort subset of search extraction: the same field extractors,
    run over the window around the case number (or the whole page when the
    number does not appear), plus the page's dated tables.
    """
    window = context_window(html or "", case_number)
    text = markup_to_text(window or html or "")
    fields, matched_any = extract_fields(text, case_number)

    case_type = fields["case_type"]
    if case_type == UNKNOWN:
        case_type = case_type_for_number(case_number)

    found = bool(window)
    if not found:
        logger.warning(f"Case {case_number} not present in detail page; fields are defaults")

    return CaseRecord(
        case_number=case_number,
        title=TITLE.first_match(text) or f"Case {case_number}",
        case_type=case_type,
        status=fields["status"],
        date_filed=fields["date_filed"],
        last_activity=today_iso(),
        department=fields["department"],
        judge=fields["judge"],
        parties=extract_parties(text, ""),
        upcoming_events=parse_calendar_events(html),
        register_of_actions=parse_register_of_actions(html),
        confidence="high" if found and matched_any else "low",
        source="case_details",
    )

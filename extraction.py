"""
Extraction pipeline: county search-result HTML -> CaseRecord list.

The county pages have no stable structure, so extraction is a chain of
regex heuristics:

1. Identifier discovery: every case-number shape over the whole document,
   de-duplicated in document order.
2. Scoping: a results-table row holding the identifier is its whole scope.
   Otherwise the text after the identifier's first occurrence, capped at
   1000 characters and cut at the nearest other identifier. Only the title
   and parties may also come from the text just before it (a caption), cut
   the same way, so fields of neighbouring cases do not bleed together.
3. Field extraction: one FieldExtractor per field, each an ordered table of
   patterns (labelled "Case Status: ..." before bare heuristics) with a
   default when nothing matches.
4. Keyword fallback: no identifiers but the page talks about cases or
   hearings -> one synthetic low-confidence record instead of nothing.

Nothing in this module raises on bad input; ambiguity becomes defaults.

Also here: query classification (detect_search_type), hidden-field and
form harvesting for the form-submission strategy, and conversion of the
occasional JSON response.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from models import (
    DEFAULT_DEPARTMENT,
    UNKNOWN,
    CaseRecord,
    SearchKind,
    case_type_for_number,
    is_case_number,
    normalize_date,
    today_iso,
)

logger = logging.getLogger(__name__)

WINDOW_CHARS = 1000
KEYWORD_FALLBACK_STATUS = "Search Results Found"
CASE_KEYWORDS = ("case", "court", "hearing", "judge")


# ============================================================
# Query classification
# ============================================================


def detect_search_type(query: str, kind: SearchKind | str = SearchKind.ALL) -> SearchKind:
    """
    Decide which form field a query belongs in.

    Case-number shapes win regardless of kind; otherwise attorney searches
    stay attorney searches and everything else is a party-name search.

    >>> detect_search_type("22FL001581C")
    <SearchKind.CASE_NUMBER: 'caseNumber'>
    >>> detect_search_type("John Smith")
    <SearchKind.NAME: 'name'>
    """
    if is_case_number(query):
        return SearchKind.CASE_NUMBER
    if SearchKind(kind) == SearchKind.ATTORNEY:
        return SearchKind.ATTORNEY
    return SearchKind.NAME


# ============================================================
# Markup helpers
# ============================================================

_RE_SCRIPT_STYLE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)


def strip_scripts(html: str) -> str:
    """Remove <script> and <style> blocks, keep the rest of the markup."""
    return _RE_SCRIPT_STYLE.sub(" ", html or "")


def markup_to_text(html: str) -> str:
    """
    Visible text of an HTML fragment, one block per line.

    Works on fragments cut from the middle of a page (dangling tags are
    tolerated by html.parser).
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "meta", "link", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator="\n")
    lines = []
    for line in text.split("\n"):
        line = re.sub(r"[ \t\xa0]+", " ", line).strip()
        if line:
            lines.append(line)
    return "\n".join(lines)


# ============================================================
# Step 1: identifier discovery
# ============================================================

# Ordered: jurisdiction-specific compact form, labelled forms, generic dashed form.
CASE_NUMBER_PATTERNS: list[re.Pattern] = [
    # 22FL001581C
    re.compile(r"(?<![A-Za-z0-9])(\d{2}[A-Z]{2}\d{6}[A-Z]?)(?![A-Za-z0-9])"),
    # Case Number: FL-2024-123456 / Case No. FL2024123456
    re.compile(
        r"Case\s+(?:Number|No\.?|#)[:\s#]*([A-Z]{2}-?\d{4}-?\d{3,10})(?![0-9])",
        re.IGNORECASE,
    ),
    # FL-2024-123456 (3 to 10 digit sequence)
    re.compile(r"(?<![A-Za-z0-9])([A-Z]{2}-\d{4}-\d{3,10})(?![0-9])"),
]


def identifier_spans(html: str) -> list[tuple[int, int, str]]:
    """(start, end, case_number) for every identifier occurrence, in document order."""
    spans = []
    for pattern in CASE_NUMBER_PATTERNS:
        for m in pattern.finditer(html):
            spans.append((m.start(1), m.end(1), m.group(1).upper()))
    spans.sort()
    return spans


def find_case_numbers(html: str) -> list[str]:
    """All case numbers in html, upper-cased, de-duplicated in document order."""
    return list(dict.fromkeys(number for _, _, number in identifier_spans(html)))


# ============================================================
# Step 2: scoping each identifier
# ============================================================

# Fewer cells than this is a label/value pair, not a results row.
MIN_ROW_CELLS = 3


def result_rows(html: str) -> dict[str, str]:
    """
    Case number -> its results-table row, one cell per line.

    Only rows with at least MIN_ROW_CELLS direct cells and exactly one
    distinct case number count. The first such row wins for each number.
    """
    if "<tr" not in html.lower():
        return {}
    soup = BeautifulSoup(strip_scripts(html), "html.parser")
    rows: dict[str, str] = {}
    for tr in soup.find_all("tr"):
        cells = [
            re.sub(r"\s+", " ", cell.get_text(" ")).strip()
            for cell in tr.find_all(["td", "th"], recursive=False)
        ]
        cells = [c for c in cells if c]
        if len(cells) < MIN_ROW_CELLS:
            continue
        text = "\n".join(cells)
        numbers = find_case_numbers(text)
        if len(numbers) == 1 and numbers[0] not in rows:
            rows[numbers[0]] = text
    return rows


def context_window(html: str, case_number: str, size: int = WINDOW_CHARS) -> str:
    """Raw markup within `size` characters of the first occurrence of case_number."""
    m = re.search(re.escape(case_number), html, re.IGNORECASE)
    if not m:
        return ""
    return html[max(0, m.start() - size): m.end() + size]


@dataclass
class CaseScope:
    """Text that belongs to one case: its row or what follows it, and what precedes it."""

    following: str
    preceding: str = ""


def window_scope(
    html: str,
    case_number: str,
    spans: list[tuple[int, int, str]] | None = None,
    size: int = WINDOW_CHARS,
) -> CaseScope:
    """
    Text after and before the first occurrence of case_number.

    Each side runs for at most `size` characters and stops at the nearest
    other case number.
    """
    if spans is None:
        spans = identifier_spans(html)
    own = next(((s, e) for s, e, number in spans if number == case_number), None)
    if own is None:
        return CaseScope(markup_to_text(context_window(html, case_number, size)))
    start, end = own
    others = [(s, e) for s, e, number in spans if number != case_number]
    stop = min([s for s, _ in others if s >= end] + [end + size])
    begin = max([e for _, e in others if e <= start] + [start - size, 0])
    return CaseScope(markup_to_text(html[start:stop]), markup_to_text(html[begin:start]))


def case_scope(
    html: str,
    case_number: str,
    rows: dict[str, str] | None = None,
    spans: list[tuple[int, int, str]] | None = None,
) -> CaseScope:
    """The row when the identifier sits in a results table, else the windows."""
    if rows is None:
        rows = result_rows(html)
    if case_number in rows:
        return CaseScope(rows[case_number])
    return window_scope(html, case_number, spans)


# ============================================================
# Step 3: field extraction
# ============================================================

# Tokens that mean a capture ran into markup, CSS or JS rather than case data.
_NOISE_TOKENS = (
    "<", "{", "}", "href=", "src=", "data-", "class=", "media=", "stylesheet",
    "application/json", "drupal", "bootstrap", "css", "javascript", "script",
    "ajax", "gtag",
)
_CLEAN_VALUE = re.compile(r"^[\w\s\-.,/:;'&()#\[\]]+$")

# Column headers that follow an empty label cell; never field values.
_LABEL_WORDS = {
    "case number", "case no", "case title", "case name", "case type", "case category",
    "case status", "status", "title", "type", "date filed", "filing date", "filed",
    "department", "dept", "court location", "location", "judicial officer", "judge",
    "petitioner", "respondent", "plaintiff", "defendant", "party", "party name", "name",
    "attorney", "attorney name",
}


def clean_value(value: str) -> Optional[str]:
    """Trimmed value if it looks like real case data, else None."""
    value = re.sub(r"\s+", " ", value or "").strip(" :-.\t")
    if not 2 < len(value) < 100:
        return None
    lowered = value.lower()
    if lowered in _LABEL_WORDS:
        return None
    if any(token in lowered for token in _NOISE_TOKENS):
        return None
    if not _CLEAN_VALUE.match(value):
        return None
    return value


def _label(name: str) -> re.Pattern:
    # "Case Status: Active", "Dept. 702", "Case Status\nActive" (label and value in adjacent cells)
    return re.compile(rf"\b{name}\b\.?[ \t]*[:#]?[ \t]*\n?[ \t]*([^\n]+)", re.IGNORECASE)


@dataclass
class FieldExtractor:
    """
    An ordered pattern table for one field.

    Each pattern's first capture group is the candidate value. The first
    candidate that survives clean_value() wins; `default` is used when no
    pattern yields one. Only extractors that `looks_back` read the text
    preceding an identifier.
    """

    name: str
    patterns: list[re.Pattern]
    default: Callable[[str], str] = lambda query: ""
    transform: Callable[[str], str] = lambda value: value
    looks_back: bool = False

    def first_match(self, text: str) -> Optional[str]:
        for pattern in self.patterns:
            for m in pattern.finditer(text):
                value = clean_value(m.group(1))
                if value:
                    return self.transform(value)
        return None

    def extract(self, scope: CaseScope | str, query: str = "") -> tuple[str, bool]:
        """(value, matched) - matched is False when the default was used."""
        if isinstance(scope, str):
            scope = CaseScope(scope)
        texts = [scope.following, scope.preceding] if self.looks_back else [scope.following]
        for text in texts:
            value = self.first_match(text)
            if value is not None:
                return value, True
        return self.default(query), False


_VS_LINE = re.compile(r"^([^\n]*?\S\s+(?:vs\.?|v\.)\s+\S[^\n]*)$", re.IGNORECASE | re.MULTILINE)
_US_DATE_VALUE = r"(\d{1,2}/\d{1,2}/\d{4})"

TITLE = FieldExtractor(
    name="title",
    patterns=[_label("Case Title"), _label("Case Name"), _label("Title"), _VS_LINE],
    default=lambda query: f"Case involving {query}",
    looks_back=True,
)

CASE_TYPE = FieldExtractor(
    name="case_type",
    patterns=[
        _label("Case Type"),
        _label("Case Category"),
        re.compile(
            r"\b(Family Law|Criminal|Civil|Small Claims|Traffic|Juvenile|Administrative|"
            r"Appeals|Guardianship|Mental Health|Probate)\b",
            re.IGNORECASE,
        ),
    ],
    default=lambda query: UNKNOWN,
)

STATUS = FieldExtractor(
    name="status",
    patterns=[
        _label("Case Status"),
        _label("Status"),
        re.compile(r"\b(Active|Closed|Pending|Post Judgment|Open|Dismissed)\b", re.IGNORECASE),
    ],
    default=lambda query: "Active",
)

DATE_FILED = FieldExtractor(
    name="date_filed",
    patterns=[
        re.compile(rf"Date\s+Filed[:\s]*{_US_DATE_VALUE}", re.IGNORECASE),
        re.compile(rf"Filing\s+Date[:\s]*{_US_DATE_VALUE}", re.IGNORECASE),
        re.compile(rf"\bFiled[:\s]*{_US_DATE_VALUE}", re.IGNORECASE),
        re.compile(r"Date\s+Filed[:\s]*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
        re.compile(_US_DATE_VALUE),
    ],
    default=lambda query: today_iso(),
    transform=normalize_date,
)

DEPARTMENT = FieldExtractor(
    name="department",
    patterns=[_label("Department"), _label("Dept"), _label("Court Location")],
    default=lambda query: DEFAULT_DEPARTMENT,
)

JUDGE = FieldExtractor(
    name="judge",
    patterns=[
        _label("Judicial Officer"),
        _label("Judge"),
        re.compile(r"\bHon(?:orable|\.)\s+([^\n]+)", re.IGNORECASE),
    ],
    default=lambda query: UNKNOWN,
)

FIELD_EXTRACTORS: list[FieldExtractor] = [TITLE, CASE_TYPE, STATUS, DATE_FILED, DEPARTMENT, JUDGE]

PARTY_PATTERNS: list[re.Pattern] = [
    _label("Petitioner"),
    _label("Respondent"),
    _label("Plaintiff"),
    _label("Defendant"),
    _label("Party"),
]
_VS_SPLIT = re.compile(r"^(.+?)\s+(?:vs\.?|v\.)\s+(.+)$", re.IGNORECASE)


def extract_parties(text: str, query: str) -> list[str]:
    """The query first, then labelled parties, then both sides of an 'A vs B' caption."""
    parties = [query] if query else []
    for pattern in PARTY_PATTERNS:
        for m in pattern.finditer(text):
            value = clean_value(m.group(1))
            if value:
                parties.append(value)
                break
    vs = _VS_LINE.search(text)
    if vs:
        sides = _VS_SPLIT.match(vs.group(1).strip())
        if sides:
            for side in sides.groups():
                value = clean_value(side.replace("[IMAGED]", ""))
                if value:
                    parties.append(value)
    return list(dict.fromkeys(parties))


def scoped_parties(scope: CaseScope, query: str) -> list[str]:
    """Parties following the identifier, else from a preceding caption."""
    for text in (scope.following, scope.preceding):
        found = extract_parties(text, "")
        if found:
            return list(dict.fromkeys(([query] if query else []) + found))
    return [query] if query else []


def extract_fields(scope: CaseScope | str, query: str) -> tuple[dict[str, str], bool]:
    """Run every field extractor over the scope. Returns (fields, any_labelled_match)."""
    fields: dict[str, str] = {}
    matched_any = False
    for extractor in FIELD_EXTRACTORS:
        value, matched = extractor.extract(scope, query)
        fields[extractor.name] = value
        matched_any = matched_any or matched
    return fields, matched_any


def build_record(case_number: str, scope: CaseScope, query: str, source: str | None = None) -> CaseRecord:
    fields, matched_any = extract_fields(scope, query)
    return CaseRecord(
        case_number=case_number,
        title=fields["title"],
        case_type=fields["case_type"],
        status=fields["status"],
        date_filed=fields["date_filed"],
        last_activity=today_iso(),
        department=fields["department"],
        judge=fields["judge"],
        parties=scoped_parties(scope, query),
        confidence="high" if matched_any else "low",
        source=source,
    )


# ============================================================
# Step 4: keyword fallback and the pipeline entry point
# ============================================================


def has_case_keywords(html: str) -> bool:
    lowered = strip_scripts(html).lower()
    return any(keyword in lowered for keyword in CASE_KEYWORDS)


def keyword_fallback_record(query: str, source: str | None = None) -> CaseRecord:
    """Placeholder for a page that mentions cases but yields no case number."""
    return CaseRecord(
        case_number=f"SEARCH-{int(time.time() * 1000)}",
        title=f"Case involving {query}",
        status=KEYWORD_FALLBACK_STATUS,
        parties=[query],
        confidence="low",
        source=source,
        note="Page mentions case information but no case number could be extracted.",
    )


def parse_search_results(html: str, original_query: str, source: str | None = None) -> list[CaseRecord]:
    """
    Turn a search-result page into case records, in discovery order.

    Never raises; an unparsable page yields [] or a single keyword-fallback
    record.
    """
    if not html:
        return []

    case_numbers = find_case_numbers(html)
    if not case_numbers:
        if has_case_keywords(html):
            logger.info(
                f"No case numbers for {original_query!r}, page mentions case keywords; "
                "returning placeholder record"
            )
            return [keyword_fallback_record(original_query, source)]
        logger.debug(f"No case numbers or case keywords for {original_query!r}")
        return []

    logger.info(f"Found {len(case_numbers)} case number(s): {case_numbers[:10]}")
    rows = result_rows(html)
    spans = identifier_spans(html)
    records = []
    for number in case_numbers:
        scope = case_scope(html, number, rows, spans)
        records.append(build_record(number, scope, original_query, source))
    return records


# ============================================================
# Form harvesting (form-submission strategy)
# ============================================================

_RE_INPUT = re.compile(r"<input\b[^>]*>", re.IGNORECASE)
_RE_FORM = re.compile(r"<form\b([^>]*)>(.*?)</form\s*>", re.IGNORECASE | re.DOTALL)


def _attr(tag: str, name: str) -> Optional[str]:
    m = re.search(
        rf"""\b{name}\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""",
        tag,
        re.IGNORECASE,
    )
    if not m:
        return None
    raw = next(g for g in m.groups() if g is not None)
    return html_lib.unescape(raw)


def extract_hidden_fields(html: str) -> dict[str, str]:
    """
    Every <input type="hidden"> name/value pair in the markup.

    The court embeds anti-forgery and session tokens here; they must be
    sent back unchanged with the search submission.
    """
    fields: dict[str, str] = {}
    for tag in _RE_INPUT.findall(html or ""):
        if (_attr(tag, "type") or "").lower() != "hidden":
            continue
        name = _attr(tag, "name")
        if not name:
            continue
        fields[name] = _attr(tag, "value") or ""
    return fields


@dataclass
class FormSpec:
    action: str
    method: str = "POST"
    hidden_fields: dict[str, str] = field(default_factory=dict)


def extract_search_form(html: str, page_url: str, field_names: Iterable[str] = ()) -> FormSpec:
    """
    Locate the search form on page_url and describe how to submit it.

    Prefers a form containing one of field_names, then one mentioning
    "search", then the first form. Without any form the page URL itself is
    the target. A form without a method attribute is submitted with POST.
    """
    forms = _RE_FORM.findall(html or "")
    chosen: Optional[tuple[str, str]] = None
    for attrs, body in forms:
        if any(re.search(rf"""name\s*=\s*["']?{re.escape(n)}\b""", body, re.IGNORECASE) for n in field_names):
            chosen = (attrs, body)
            break
    if chosen is None:
        chosen = next((f for f in forms if "search" in (f[0] + f[1]).lower()), None)
    if chosen is None and forms:
        chosen = forms[0]

    hidden = extract_hidden_fields(html)
    if chosen is None:
        return FormSpec(action=page_url, method="POST", hidden_fields=hidden)

    attrs = f"<form {chosen[0]}>"
    action = _attr(attrs, "action")
    method = (_attr(attrs, "method") or "POST").upper()
    return FormSpec(
        action=urljoin(page_url, action) if action else page_url,
        method=method if method in ("GET", "POST") else "POST",
        hidden_fields=hidden,
    )


# ============================================================
# JSON responses
# ============================================================


def _first(item: dict, *keys, default=None):
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return default


def json_to_record(item: dict, query: str, source: str | None = None) -> CaseRecord:
    """Map one JSON case object (field names vary by endpoint) to a CaseRecord."""
    case_number = str(_first(item, "caseNumber", "case_number", "case", default=f"JSON-{int(time.time() * 1000)}"))
    parties = _first(item, "parties", "case_parties")
    if parties is None:
        if item.get("petitioner") and item.get("respondent"):
            parties = [item["petitioner"], item["respondent"]]
        elif item.get("plaintiff") and item.get("defendant"):
            parties = [item["plaintiff"], item["defendant"]]
        else:
            parties = []
    elif isinstance(parties, str):
        parties = [parties]

    return CaseRecord(
        case_number=case_number,
        title=str(_first(item, "caseTitle", "case_title", "title", "name", default=f"Case involving {query}")),
        case_type=str(_first(item, "caseType", "case_type", "type", default=case_type_for_number(case_number))),
        status=str(_first(item, "status", "case_status", "caseStatus", default="Active")),
        date_filed=normalize_date(str(_first(item, "dateFiled", "date_filed", "filedDate", default=""))),
        last_activity=today_iso(),
        department=str(_first(item, "department", "dept", "courtLocation", default=DEFAULT_DEPARTMENT)),
        judge=str(_first(item, "judge", "judicialOfficer", "judicial_officer", default=UNKNOWN)),
        parties=[query] + [str(p) for p in parties],
        source=source,
    )


def convert_json_results(payload, query: str, source: str | None = None) -> list[CaseRecord]:
    """Records from a JSON search response: {"cases": [...]}, [...], or a single case object."""
    if isinstance(payload, dict) and isinstance(payload.get("cases"), list):
        items = payload["cases"]
    elif isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict) and (payload.get("caseNumber") or payload.get("case")):
        items = [payload]
    else:
        return []
    return [json_to_record(item, query, source) for item in items if isinstance(item, dict)]

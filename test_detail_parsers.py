from __future__ import annotations

from detail_parsers import parse_calendar_events, parse_case_details, parse_register_of_actions

CALENDAR_HTML = """
<table>
  <tr><th>Date</th><th>Time</th><th>Hearing</th><th>Dept</th><th>Judge</th></tr>
  <tr><td>06/12/2024</td><td>9:00 am</td><td>Request for Order</td><td>Dept. 702</td><td>Judge Jane Roe</td></tr>
  <tr>
    <td>06/20/2024</td><td>1:30 PM</td><td>Status Conference</td><td>F5</td><td>Hon. A. Smith</td>
    <td>Zoom ID: 123 456 7890 Passcode: 998877</td>
  </tr>
</table>
"""

ROA_HTML = """
<table>
  <tr><th>Date</th><th>Action</th><th>Description</th><th>Filed By</th></tr>
  <tr><td>03/15/2022</td><td>Petition filed</td><td>Petition for dissolution</td><td>Mary Larson</td></tr>
  <tr><td>2022-04-01</td><td>Response filed</td></tr>
</table>
"""

DETAIL_HTML = f"""
<html><body>
<h1>Case Detail</h1>
<table>
  <tr><td>Case Number:</td><td>22FL001581C</td></tr>
  <tr><td>Case Title:</td><td>Larson vs Larson</td></tr>
  <tr><td>Case Status:</td><td>Post Judgment</td></tr>
  <tr><td>Date Filed:</td><td>03/15/2022</td></tr>
</table>
{CALENDAR_HTML}
{ROA_HTML}
</body></html>
"""


def test_parse_calendar_events():
    events = parse_calendar_events(CALENDAR_HTML)
    assert len(events) == 2

    first, second = events
    assert first.date == "2024-06-12"
    assert first.time == "9:00 AM"
    assert first.event_type == "Request for Order"
    assert first.department == "Dept. 702"
    assert first.judge == "Judge Jane Roe"
    assert first.virtual_info is None

    assert second.date == "2024-06-20"
    assert second.time == "1:30 PM"
    assert second.department == "F5"
    assert second.judge == "Hon. A. Smith"
    assert second.virtual_info.zoom_id == "1234567890"
    assert second.virtual_info.passcode == "998877"


def test_parse_calendar_events_unknown_layout():
    assert parse_calendar_events("<p>Calendar unavailable</p>") == []
    assert parse_calendar_events("") == []


def test_parse_register_of_actions():
    actions = parse_register_of_actions(ROA_HTML)
    assert [a.date for a in actions] == ["2022-03-15", "2022-04-01"]
    assert actions[0].action == "Petition filed"
    assert actions[0].description == "Petition for dissolution"
    assert actions[0].filed_by == "Mary Larson"
    assert actions[1].description == ""
    assert actions[1].filed_by == "Unknown"


def test_register_of_actions_skips_timed_rows():
    assert parse_register_of_actions(CALENDAR_HTML) == []


def test_parse_case_details():
    record = parse_case_details(DETAIL_HTML, "22FL001581C")

    assert record.case_number == "22FL001581C"
    assert record.title == "Larson vs Larson"
    assert record.case_type == "Family Law"
    assert record.status == "Post Judgment"
    assert record.date_filed == "2022-03-15"
    assert "Larson" in record.parties
    assert len(record.upcoming_events) == 2
    assert len(record.register_of_actions) == 2
    assert record.confidence == "high"
    assert record.source == "case_details"


def test_parse_case_details_when_case_missing():
    record = parse_case_details("<p>No matching case</p>", "CR-2023-000123")

    assert record.case_number == "CR-2023-000123"
    assert record.title == "Case CR-2023-000123"
    assert record.case_type == "Criminal"
    assert record.status == "Active"
    assert record.upcoming_events == []
    assert record.confidence == "low"

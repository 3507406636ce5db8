from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from config import ClientConfig
from models import (
    CaseRecord,
    RateLimitStatus,
    case_type_for_number,
    is_case_number,
    normalize_date,
    parse_date,
)


# ============================================================
# Case numbers
# ============================================================


@pytest.mark.parametrize(
    "text",
    ["22FL001581C", "22FL001581", "FL-2024-123456", "cr-2023-0001", " 23CV012345 "],
)
def test_is_case_number_accepts_county_shapes(text):
    assert is_case_number(text)


@pytest.mark.parametrize("text", ["John Smith", "", "FL-24-1234", "2FL001581C", "FL-2024-123"])
def test_is_case_number_rejects_other_text(text):
    assert not is_case_number(text)


def test_case_type_for_number():
    assert case_type_for_number("22FL001581C") == "Family Law"
    assert case_type_for_number("CR-2023-000123") == "Criminal"
    assert case_type_for_number("22XX001581C") == "Unknown"
    assert case_type_for_number("John Smith") == "Unknown"


# ============================================================
# Dates
# ============================================================


def test_parse_date_formats():
    assert parse_date("Filed 03/15/2022") == date(2022, 3, 15)
    assert parse_date("2024-06-01") == date(2024, 6, 1)
    assert parse_date("13/45/2022") is None
    assert parse_date("") is None


def test_normalize_date_falls_back_to_today():
    assert normalize_date("3/5/2021") == "2021-03-05"
    assert normalize_date("not a date") == date.today().isoformat()


# ============================================================
# CaseRecord
# ============================================================


def test_case_record_defaults_and_wire_names():
    record = CaseRecord(case_number="22FL001581C", title="Larson vs Larson")
    data = record.model_dump(by_alias=True)

    assert data["caseNumber"] == "22FL001581C"
    assert data["caseType"] == "Unknown"
    assert data["status"] == "Active"
    assert data["dateFiled"] == date.today().isoformat()
    assert data["lastActivity"] == date.today().isoformat()
    assert data["department"] == "San Diego Superior Court"
    assert data["judge"] == "Unknown"
    assert data["upcomingEvents"] == []
    assert data["registerOfActions"] == []
    assert data["confidence"] == "high"


def test_case_record_accepts_wire_names():
    record = CaseRecord.model_validate(
        {"caseNumber": "FL-2024-123456", "title": "X", "caseType": "Family Law", "dateFiled": "2024-01-02"}
    )
    assert record.case_number == "FL-2024-123456"
    assert record.case_type == "Family Law"
    assert record.date_filed == "2024-01-02"


def test_parties_are_deduplicated_in_order():
    record = CaseRecord(
        case_number="22FL001581C",
        title="t",
        parties=["Larson", " Mary Larson ", "Larson", "", "John Larson"],
    )
    assert record.parties == ["Larson", "Mary Larson", "John Larson"]


def test_confidence_must_be_high_or_low():
    with pytest.raises(ValidationError):
        CaseRecord(case_number="22FL001581C", title="t", confidence="medium")


def test_rate_limit_status_wire_names():
    status = RateLimitStatus(current=3, limit=450, reset_time=1_700_000_000_000)
    assert status.model_dump(by_alias=True) == {"current": 3, "limit": 450, "resetTime": 1_700_000_000_000}


# ============================================================
# Configuration
# ============================================================


def test_config_defaults():
    config = ClientConfig()
    assert config.rate_limit == 450
    assert config.rate_window_ms == 10_000
    assert config.search_url == (
        "https://www.sdcourt.ca.gov/sdcourt/generalinformation/courtrecords2/onlinecasesearch"
    )


def test_config_from_env_overrides():
    config = ClientConfig.from_env(
        {
            "COURT_BASE_URL": "http://localhost:8080/",
            "COURT_RATE_LIMIT": "10",
            "COURT_TIMEOUT": "2.5",
            "COURT_PROXY": "socks5h://127.0.0.1:1080",
        }
    )
    assert config.base_url == "http://localhost:8080"
    assert config.calendar_url == "http://localhost:8080/portal/portal.portal"
    assert config.rate_limit == 10
    assert config.timeout == 2.5
    assert config.proxy == "socks5h://127.0.0.1:1080"
    assert config.roa_base_url == "https://roasearch.sdcourt.ca.gov"


def test_config_from_env_ignores_empty_values():
    assert ClientConfig.from_env({"COURT_BASE_URL": ""}) == ClientConfig()

from __future__ import annotations

import io
import json
import sys

import pytest

import run_search
from county_client import AggregatedSearchFailure
from models import CaseRecord, RateLimitStatus


class FakeClient:
    def __init__(self, *args, **kwargs):
        self.calls = []
        self.closed = False

    def search_cases(self, query, kind="all", deadline=None):
        self.calls.append(("search", query, kind, deadline))
        if query == "explode":
            raise AggregatedSearchFailure()
        return [CaseRecord(case_number="22FL001581C", title="Larson vs Larson", parties=[query])]

    def update_tracked_cases(self, case_numbers, deadline=None):
        self.calls.append(("track", list(case_numbers), deadline))
        return [CaseRecord(case_number=n, title=f"Case {n}") for n in case_numbers]

    def get_rate_limit_status(self):
        return RateLimitStatus(current=2, limit=450, reset_time=1_700_000_000_000)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def _run(argv):
    args = run_search.build_parser().parse_args(argv)
    client = FakeClient()
    out = io.StringIO()
    code = run_search.run_command(args, client, out=out)
    lines = [json.loads(line) for line in out.getvalue().splitlines()]
    return code, lines, client


def test_search_prints_json_lines_with_wire_names():
    code, lines, client = _run(["search", "Larson", "--kind", "name"])
    assert code == 0
    assert lines[0]["caseNumber"] == "22FL001581C"
    assert lines[0]["parties"] == ["Larson"]
    assert "source" not in lines[0]
    assert client.calls[0][:3] == ("search", "Larson", "name")
    assert client.calls[0][3] is None


def test_search_timeout_builds_deadline():
    _, _, client = _run(["search", "Larson", "--timeout", "30"])
    deadline = client.calls[0][3]
    assert deadline is not None
    assert 0 < deadline.remaining() <= 30


def test_search_failure_exit_code():
    code, lines, _ = _run(["search", "explode"])
    assert code == 1
    assert lines == []


def test_track_reads_case_file(tmp_path):
    case_file = tmp_path / "tracked.txt"
    case_file.write_text("22FL001581C\n\n# closed\nFL-2024-123456  # active\n", encoding="utf-8")

    code, lines, client = _run(["track", "CR-2023-000123", "--file", str(case_file)])

    assert code == 0
    assert [line["caseNumber"] for line in lines] == ["CR-2023-000123", "22FL001581C", "FL-2024-123456"]
    assert client.calls[0][1] == ["CR-2023-000123", "22FL001581C", "FL-2024-123456"]


def test_track_without_cases_is_usage_error():
    code, lines, _ = _run(["track"])
    assert code == 2
    assert lines == []


def test_status_command():
    code, lines, _ = _run(["status"])
    assert code == 0
    assert lines == [{"current": 2, "limit": 450, "resetTime": 1_700_000_000_000}]


def test_run_search_requires_command(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["run_search.py"])
    with pytest.raises(SystemExit) as exc:
        run_search.main()
    assert exc.value.code == 2


def test_run_search_rejects_unknown_kind(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["run_search.py", "search", "Larson", "--kind", "ssn"])
    with pytest.raises(SystemExit) as exc:
        run_search.main()
    assert exc.value.code == 2


def test_main_writes_records_to_stdout(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(run_search, "CountyCourtClient", FakeClient)
    monkeypatch.setattr(sys, "argv", ["run_search.py", "search", "Larson"])

    run_search.main()

    out_lines = capsys.readouterr().out.splitlines()
    assert json.loads(out_lines[0])["title"] == "Larson vs Larson"
    assert (tmp_path / "logs").is_dir()


def test_main_exits_non_zero_on_failure(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(run_search, "CountyCourtClient", FakeClient)
    monkeypatch.setattr(sys, "argv", ["run_search.py", "search", "explode"])

    with pytest.raises(SystemExit) as exc:
        run_search.main()
    assert exc.value.code == 1


def test_main_rejects_bad_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("COURT_RATE_LIMIT", "many")
    monkeypatch.setattr(sys, "argv", ["run_search.py", "status"])

    with pytest.raises(SystemExit) as exc:
        run_search.main()
    assert exc.value.code == 2

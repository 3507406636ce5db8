#!/usr/bin/env python3
"""
Command-line front end for the county court client.

Each record is printed as one JSON line (camelCase wire names), so the
output can be piped straight into the calling application or jq.

Usage:
    python3 run_search.py search "John Smith"
    python3 run_search.py search 22FL001581C --kind caseNumber --timeout 60
    python3 run_search.py details FL-2024-123456
    python3 run_search.py calendar 2024-06-01 2024-06-30
    python3 run_search.py track 22FL001581C FL-2024-123456
    python3 run_search.py track --file tracked_cases.txt
    python3 run_search.py status

Configuration comes from COURT_* environment variables (see config.py).
Logs go to stderr and logs/run_search.log.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from county_client import (
    AggregatedSearchFailure,
    CalendarSyncError,
    CaseDetailsError,
    CountyCourtClient,
)
from deadline import Deadline, DeadlineExceeded, SearchCancelled
from models import SearchKind

logger = logging.getLogger("run_search")


def serialize_record(record) -> str:
    """Serialize a model to a JSON string (one line) using wire names."""
    data = record.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(data, ensure_ascii=False, default=str)


def _emit(records, out) -> None:
    for record in records:
        out.write(serialize_record(record) + "\n")
    out.flush()


def _read_case_file(path: str) -> list[str]:
    """One case number per line; blank lines and # comments ignored."""
    numbers = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.split("#", 1)[0].strip()
            if line:
                numbers.append(line)
    return numbers


def run_command(args, client: CountyCourtClient, out=None) -> int:
    """Dispatch one subcommand. Returns the process exit code."""
    if out is None:
        out = sys.stdout
    deadline = Deadline(args.timeout) if getattr(args, "timeout", None) else None

    try:
        if args.command == "search":
            records = client.search_cases(args.query, args.kind, deadline=deadline)
            _emit(records, out)
            logger.info(f"Search done. Records: {len(records)}")
        elif args.command == "details":
            _emit([client.get_case_details(args.case_number, deadline=deadline)], out)
        elif args.command == "calendar":
            events = client.get_calendar_events(args.start_date, args.end_date, deadline=deadline)
            _emit(events, out)
            logger.info(f"Calendar sync done. Events: {len(events)}")
        elif args.command == "track":
            case_numbers = list(args.case_numbers)
            if args.file:
                case_numbers.extend(_read_case_file(args.file))
            if not case_numbers:
                logger.error("No case numbers to track")
                return 2
            _emit(client.update_tracked_cases(case_numbers, deadline=deadline), out)
        elif args.command == "status":
            _emit([client.get_rate_limit_status()], out)
    except (AggregatedSearchFailure, CaseDetailsError, CalendarSyncError) as e:
        logger.error(f"{e} ({e.__cause__})" if e.__cause__ else str(e))
        return 1
    except (DeadlineExceeded, SearchCancelled) as e:
        logger.error(f"Stopped: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search San Diego Superior Court case records")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="Search cases by name, case number or attorney")
    p.add_argument("query")
    p.add_argument(
        "--kind",
        choices=[k.value for k in SearchKind],
        default=SearchKind.ALL.value,
        help="Query type (default: detect from the query)",
    )
    p.add_argument("--timeout", type=float, help="Overall deadline in seconds")

    p = sub.add_parser("details", help="Fetch one case's detail page")
    p.add_argument("case_number")
    p.add_argument("--timeout", type=float, help="Overall deadline in seconds")

    p = sub.add_parser("calendar", help="Court calendar events between two dates")
    p.add_argument("start_date", help="YYYY-MM-DD")
    p.add_argument("end_date", help="YYYY-MM-DD")
    p.add_argument("--timeout", type=float, help="Overall deadline in seconds")

    p = sub.add_parser("track", help="Refresh tracked cases one at a time")
    p.add_argument("case_numbers", nargs="*")
    p.add_argument("--file", type=str, help="File with one case number per line")
    p.add_argument("--timeout", type=float, help="Overall deadline in seconds")

    sub.add_parser("status", help="Show rate limiter usage")
    return parser


def main():
    args = build_parser().parse_args()

    Path("logs").mkdir(exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("logs/run_search.log"),
        ],
    )

    # Suppress noisy third-party loggers
    for noisy in ("urllib3", "chardet", "charset_normalizer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    try:
        client = CountyCourtClient()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    with client:
        exit_code = run_command(args, client)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()

"""Turn upstream report payloads into minute totals and per-day series.

Reports arrive in several shapes depending on the deployment. Totals are
read by a list of extractor strategies tried in order; the first one that
recognises its shape wins and the others are ignored. A payload that matches
none of them means "no tracked time", not an error.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from .utils import coerce_minutes

logger = logging.getLogger(__name__)

Extractor = Callable[[Dict[str, Any]], Optional[int]]

DURATION_KEYS = ("Duration", "duration")
DATE_KEYS = ("Date", "date")

REPORT_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)


class PartialDataError(ValueError):
    """A single record in an otherwise valid report could not be read."""


def _first_key(record: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _record_minutes(record: Any) -> int:
    if not isinstance(record, dict):
        return 0
    return coerce_minutes(_first_key(record, DURATION_KEYS))


def _sum_records(records: List[Any]) -> int:
    return sum(_record_minutes(record) for record in records)


def _charts(report: Dict[str, Any]) -> Dict[str, Any]:
    charts = report.get("charts")
    return charts if isinstance(charts, dict) else {}


def from_chart_employments(report: Dict[str, Any]) -> Optional[int]:
    records = _charts(report).get("employments")
    if not isinstance(records, list):
        return None
    return _sum_records(records)


def from_body_details(report: Dict[str, Any]) -> Optional[int]:
    records = report.get("body")
    if not isinstance(records, list):
        return None
    return _sum_records(records)


def from_root_duration(report: Dict[str, Any]) -> Optional[int]:
    for key in DURATION_KEYS:
        if key in report and report[key] is not None:
            return coerce_minutes(report[key])
    return None


TOTAL_EXTRACTORS: List[Extractor] = [
    from_chart_employments,
    from_body_details,
    from_root_duration,
]


def extract_total_minutes(report: Any, extractors: Sequence[Extractor] = TOTAL_EXTRACTORS) -> int:
    if not isinstance(report, dict):
        return 0
    for extractor in extractors:
        total = extractor(report)
        if total is not None:
            logger.debug("Report total read by %s: %s", extractor.__name__, total)
            return max(total, 0)
    return 0


def parse_report_date(raw: Any) -> dt.date:
    """Parse the loosely formatted dates found in report timelines."""
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise PartialDataError(f"Unparseable report date: {raw!r}")
    text = raw.strip()
    try:
        return dt.datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in REPORT_DATE_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise PartialDataError(f"Unparseable report date: {raw!r}")


def extract_daily_series(report: Any) -> Dict[str, int]:
    """Map ISO dates to minutes from ``charts.timeline``.

    Records with an unreadable date are logged and skipped.
    """
    if not isinstance(report, dict):
        return {}
    timeline = _charts(report).get("timeline")
    if not isinstance(timeline, list):
        return {}
    daily: Dict[str, int] = defaultdict(int)
    for record in timeline:
        if not isinstance(record, dict):
            continue
        raw_date = _first_key(record, DATE_KEYS)
        if not raw_date:
            continue
        try:
            day = parse_report_date(raw_date)
        except PartialDataError:
            logger.warning("Report timeline date could not be parsed: %r", raw_date)
            continue
        daily[day.isoformat()] += max(_record_minutes(record), 0)
    return dict(daily)

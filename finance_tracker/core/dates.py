import re
from datetime import date, datetime

from dateutil import parser as date_parser

_MM_DD_YY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$")
_MM_DD_YYYY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DD_MM_YYYY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_YYYY_MM_DD = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")

# Two distinct defaults: if dateutil fills a missing field from them, the
# parses disagree and the value is rejected.
_PROBE_DEFAULTS = (datetime(2001, 1, 1), datetime(2002, 2, 2))


def expand_two_digit_year(yy):
    return 2000 + yy if yy < 50 else 1900 + yy


def _safe_date(year, month, day):
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_fixed_formats(raw):
    match = _MM_DD_YY.match(raw)
    if match:
        month, day, yy = (int(g) for g in match.groups())
        parsed = _safe_date(expand_two_digit_year(yy), month, day)
        if parsed:
            return parsed

    match = _MM_DD_YYYY.match(raw)
    if match:
        month, day, year = (int(g) for g in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            return parsed

    match = _DD_MM_YYYY.match(raw)
    if match:
        day, month, year = (int(g) for g in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            return parsed

    match = _YYYY_MM_DD.match(raw)
    if match:
        year, month, day = (int(g) for g in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            return parsed
    return None


def _from_generic_parser(raw):
    results = []
    for default in _PROBE_DEFAULTS:
        try:
            results.append(date_parser.parse(raw, default=default).date())
        except (ValueError, OverflowError):
            return None
    if results[0] != results[1]:
        return None
    return results[0]


def parse_statement_date(value):
    """
    Parse a date string as printed on a statement.

    Returns None when no interpretation gives a complete, valid calendar date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = " ".join(str(value).strip().split())
    if not raw:
        return None
    return _from_fixed_formats(raw) or _from_generic_parser(raw)

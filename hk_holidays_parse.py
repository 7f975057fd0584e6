#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Normalize Hong Kong holiday data from heterogeneous sources.

Every parser here returns plain holiday records:

  {"date": "YYYY-MM-DD", "name_en": str, "name_zh": str,
   "statutory": bool, "source": str}

Supported inputs:
- 1823 calendar feed as jCal (array or object form) or the legacy flat list
- ICS text (via icalendar), including RRULE recurrences (via dateutil)
- GovHK bilingual holiday pages and Labour Department statutory pages (HTML)
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from bs4 import BeautifulSoup
from dateutil.rrule import DAILY, rrule, rrulestr
from icalendar import Calendar

logger = logging.getLogger(__name__)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
COMPACT_DATE_RE = re.compile(r"^\d{8}$")

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTH = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\b\.?"
)
NUMERIC_DATE_RE = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")
ZH_DATE_RE = re.compile(r"(?:(\d{4})\s*年\s*)?(\d{1,2})\s*月\s*(\d{1,2})\s*日(?:\s*(\d{4})\s*年)?")
DAY_MONTH_RE = re.compile(r"\b(\d{1,2})\s+" + _MONTH + r",?(?:\s*(\d{4}))?", re.IGNORECASE)
MONTH_DAY_RE = re.compile(_MONTH + r"\s+(\d{1,2})(?:st|nd|rd|th)?\b,?(?:\s*(\d{4}))?", re.IGNORECASE)

WEEKDAY_RE = re.compile(
    r"\b(?:Mon|Tues?|Wed(?:nes)?|Thu(?:rs)?|Fri|Sat(?:ur)?|Sun)(?:day)?\b\.?|星期[一二三四五六日天]",
    re.IGNORECASE,
)
PAREN_RE = re.compile(r"[（(][^\d()（）]*[)）]")
LEADING_BULLET_RE = re.compile(r"^[\d.\-•·\s]+")

# Keys the 1823 feed has used for an event's start date over the years
START_KEYS = ("date", "dtstart", "dtstart;value=date")
END_KEYS = ("dtend", "dtend;value=date")
TITLE_KEYS = ("title", "summary", "name")


def make_holiday(iso_date: str, name_en: str = "", name_zh: str = "", source: str = "") -> Dict:
    return {
        "date": iso_date,
        "name_en": name_en,
        "name_zh": name_zh,
        "statutory": False,
        "source": source,
    }


def normalize_text(s: Optional[str]) -> str:
    """Collapse whitespace (including NBSP) and strip."""
    if not s:
        return ""
    s = str(s).replace("\u00a0", " ")
    return re.sub(r"\s+", " ", s).strip()


def normalize_date(value: Any) -> str:
    """
    Normalize a calendar date value to ISO YYYY-MM-DD.

    Args:
        value: 8-digit string (20240101), ISO string (2024-01-01, optionally
               followed by a time part), a date/datetime, or a list whose
               first element is one of those (jCal / 1823 feed style)

    Returns:
        ISO date string, or "" when the value is not a valid date
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value:
        return ""

    text = re.sub(r"T.*$", "", value.strip())
    if COMPACT_DATE_RE.match(text):
        fmt = "%Y%m%d"
    elif ISO_DATE_RE.match(text):
        fmt = "%Y-%m-%d"
    else:
        return ""
    try:
        return datetime.strptime(text, fmt).date().isoformat()
    except ValueError:
        return ""


def _iso(year, month, day) -> str:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except (TypeError, ValueError):
        return ""


def find_date(text: str, year: int) -> Tuple[int, int, str]:
    """
    Locate the first recognizable date in free text.

    Numeric and Chinese forms are tried first, then "1 January" and finally
    "January 1". A missing year falls back to ``year``.

    Returns:
        (start, end, ISO date) of the match; (-1, -1, "") when nothing parses
    """
    m = NUMERIC_DATE_RE.search(text)
    if m:
        return m.start(), m.end(), _iso(m.group(1), m.group(2), m.group(3))

    m = ZH_DATE_RE.search(text)
    if m:
        y = m.group(1) or m.group(4) or year
        return m.start(), m.end(), _iso(y, m.group(2), m.group(3))

    m = DAY_MONTH_RE.search(text)
    if m:
        month = MONTHS[m.group(2)[:3].lower()]
        return m.start(), m.end(), _iso(m.group(3) or year, month, m.group(1))

    m = MONTH_DAY_RE.search(text)
    if m:
        month = MONTHS[m.group(1)[:3].lower()]
        return m.start(), m.end(), _iso(m.group(3) or year, month, m.group(2))

    return -1, -1, ""


def parse_text_date(text: str, year: int) -> str:
    """Parse an English or Chinese free-text date, "" if it does not parse."""
    cleaned = WEEKDAY_RE.sub(" ", normalize_text(text))
    cleaned = re.sub(r"\s+", " ", PAREN_RE.sub(" ", cleaned)).strip()
    if not cleaned:
        return ""
    return find_date(cleaned, year)[2]


# ---------- Feed events (jCal / legacy list / ICS) ----------

def _props_to_event(props: Any) -> Dict[str, Any]:
    # jCal property: [name, params, value_type, value, ...]
    event = {}
    for prop in props if isinstance(props, list) else []:
        if not isinstance(prop, list) or len(prop) < 4 or not prop[0]:
            continue
        event[str(prop[0]).lower()] = prop[3]
    return event


def _dict_to_event(raw: Dict[str, Any]) -> Dict[str, Any]:
    event = {}
    for name, value in raw.items():
        key = str(name).lower()
        if key == "rrule":
            event[key] = value
        elif isinstance(value, list):
            event[key] = value[0] if value else None
        elif isinstance(value, dict) and "value" in value:
            event[key] = value["value"]
        else:
            event[key] = value
    return event


def extract_events(data: Any) -> List[Dict[str, Any]]:
    """
    Pull flat event dicts (lower-cased property names) out of a feed payload.

    Handles the jCal array form, the jCal object form
    ({"vcalendar": [{"vevent": [...]}]}) and a plain list of event dicts.
    Any other payload yields an empty list.
    """
    if not data:
        return []

    if isinstance(data, list) and data and data[0] == "vcalendar":
        components = data[2] if len(data) > 2 and isinstance(data[2], list) else []
        return [
            _props_to_event(c[1])
            for c in components
            if isinstance(c, list) and len(c) > 1 and c[0] == "vevent"
        ]

    if isinstance(data, list):
        return [_dict_to_event(item) for item in data if isinstance(item, dict)]

    if isinstance(data, dict) and isinstance(data.get("vcalendar"), list):
        calendars = data["vcalendar"]
        cal = calendars[0] if calendars and isinstance(calendars[0], dict) else {}
        events = []
        for ev in cal.get("vevent") or []:
            if isinstance(ev, list) and len(ev) > 1:
                events.append(_props_to_event(ev[1]))
            elif isinstance(ev, dict):
                events.append(_dict_to_event(ev))
        return events

    return []


def _first_value(event: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = event.get(key)
        if value:
            return value
    return None


def _recur_to_text(rule: Dict[str, Any]) -> str:
    # jCal recur object: {"freq": "YEARLY", "bymonth": 1, "byday": ["2SU"], ...}
    parts = []
    for key, value in rule.items():
        values = value if isinstance(value, list) else [value]
        if key.lower() == "until":
            values = [re.sub(r"[-:]", "", str(v)) for v in values]
        parts.append(f"{key.upper()}={','.join(str(v) for v in values)}")
    return ";".join(parts)


def expand_rrule(rule: Any, dtstart: Any, start_year: int, end_year: int) -> List[str]:
    """
    Expand a recurrence rule into ISO dates inside a year window.

    Args:
        rule: RRULE text (``FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1``, with or
              without the ``RRULE:`` prefix) or a jCal recur object
        dtstart: first occurrence (ISO string, 8-digit string or date)
        start_year: first year of the window (inclusive)
        end_year: last year of the window (inclusive)

    Returns:
        Sorted ISO dates; empty when the rule or start date is malformed
    """
    start_iso = normalize_date(dtstart)
    if isinstance(rule, list):
        rule = rule[0] if rule else None
    if not start_iso or not rule:
        return []
    if isinstance(rule, dict):
        rule = _recur_to_text(rule)

    first = datetime.combine(date.fromisoformat(start_iso), time())
    window_start = datetime(start_year, 1, 1)
    window_end = datetime(end_year, 12, 31, 23, 59, 59)
    try:
        recurrence = rrulestr(str(rule).strip(), dtstart=first, ignoretz=True)
        # sub-daily or zero-interval rules would never reach window_end in useful time
        if isinstance(recurrence, rrule):
            if recurrence._interval < 1:
                raise ValueError(f"INTERVAL must be positive, got {recurrence._interval}")
            if recurrence._freq > DAILY:
                raise ValueError("FREQ finer than DAILY is not supported")
        occurrences = recurrence.between(window_start, window_end, inc=True)
    except (ValueError, TypeError, KeyError) as e:
        logger.warning("Skipping malformed RRULE %r: %s", rule, e)
        return []
    return sorted({d.date().isoformat() for d in occurrences})


def _event_rules(value: Any) -> List[Any]:
    # An ICS event may carry several RRULE lines; a jCal list holds one rule plus extras
    if not value:
        return []
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    return [value]


def event_dates(event: Dict[str, Any], start_year: int, end_year: int) -> List[str]:
    """
    ISO dates covered by one event within the year window.

    Multi-day all-day events cover every day up to (excluding) DTEND, and
    each recurrence of an RRULE covers the same span.
    """
    start = normalize_date(_first_value(event, START_KEYS))
    if not start:
        return []

    span = 1
    end = normalize_date(_first_value(event, END_KEYS))
    if end and end > start:
        span = (date.fromisoformat(end) - date.fromisoformat(start)).days

    occurrences = {start}
    for rule in _event_rules(event.get("rrule")):
        occurrences.update(expand_rrule(rule, start, start_year, end_year))

    dates: Set[str] = set()
    for occurrence in occurrences:
        day = date.fromisoformat(occurrence)
        for offset in range(span):
            current = day + timedelta(days=offset)
            if start_year <= current.year <= end_year:
                dates.add(current.isoformat())
    return sorted(dates)


def _event_title(event: Dict[str, Any]) -> str:
    title = _first_value(event, TITLE_KEYS)
    if isinstance(title, list):
        title = title[0] if title else ""
    return normalize_text(title)


def events_to_records(
    events: Iterable[Dict[str, Any]],
    lang: str,
    start_year: int,
    end_year: int,
    source: str = "1823",
) -> List[Dict]:
    """Convert flat events to holiday records; the first name seen for a date wins."""
    name_key = "name_zh" if lang == "zh" else "name_en"
    by_date: Dict[str, Dict] = {}
    for event in events:
        name = _event_title(event)
        for iso in event_dates(event, start_year, end_year):
            record = by_date.setdefault(iso, make_holiday(iso, source=source))
            if not record[name_key]:
                record[name_key] = name
    return [by_date[d] for d in sorted(by_date)]


def parse_feed_json(data: Any, lang: str, start_year: int, end_year: int, source: str = "1823") -> List[Dict]:
    return events_to_records(extract_events(data), lang, start_year, end_year, source)


def parse_ics(text: str, lang: str, start_year: int, end_year: int, source: str = "1823") -> List[Dict]:
    """
    Parse ICS text into holiday records.

    Args:
        text: iCalendar text
        lang: "en" or "zh", selects which name field SUMMARY fills
        start_year: first year kept (inclusive)
        end_year: last year kept (inclusive)
        source: source tag stored on each record

    Returns:
        Holiday records sorted by date; empty when the text does not parse
    """
    if not text or not text.strip():
        return []
    try:
        cal = Calendar.from_ical(text)
    except Exception as e:
        logger.warning("Failed to parse ICS text: %s", e)
        return []

    events = []
    for component in cal.walk("VEVENT"):
        try:
            event = _vevent_to_event(component)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Skipping unreadable VEVENT %s: %s", component.get("uid", "?"), e)
            continue
        if event:
            events.append(event)
    return events_to_records(events, lang, start_year, end_year, source)


def _vevent_to_event(component: Any) -> Optional[Dict[str, Any]]:
    dtstart = component.get("dtstart")
    if dtstart is None:
        return None
    event = {"dtstart": dtstart.dt, "summary": str(component.get("summary", ""))}
    dtend = component.get("dtend")
    if dtend is not None:
        event["dtend"] = dtend.dt
    rules = component.get("rrule")
    if rules is not None:
        # repeated RRULE lines come back as a list of vRecur
        if not isinstance(rules, list):
            rules = [rules]
        event["rrule"] = [r.to_ical().decode("utf-8") for r in rules]
    return event


# ---------- HTML pages ----------

def pick_rows(html: str) -> List[str]:
    """Text of each table row, or of each list item when the page has no table rows."""
    soup = BeautifulSoup(html, "html.parser")
    rows = [normalize_text(tr.get_text(" ")) for tr in soup.find_all("tr")]
    if not rows:
        rows = [normalize_text(li.get_text(" ")) for li in soup.find_all("li")]
    return [r for r in rows if r]


def parse_govhk_rows(rows: Iterable[str], year: int) -> Dict[str, str]:
    """
    Map ISO date -> holiday name from GovHK holiday table rows.

    A row reads "<name> <date> <weekday>" in either language; the text
    before the first date is the name. Rows that open with the date take
    the name from the text after it.
    """
    names: Dict[str, str] = {}
    for line in rows:
        start, end, iso = find_date(line, year)
        if not iso:
            continue
        if start > 0:
            name = line[:start]
        else:
            name = WEEKDAY_RE.sub(" ", PAREN_RE.sub(" ", line[end:]))
        name = LEADING_BULLET_RE.sub("", normalize_text(name)).strip()
        if len(name) >= 2 and iso not in names:
            names[iso] = name
    return names


def parse_statutory_dates(html: str, year: int) -> Set[str]:
    """Every date mentioned in a list item, paragraph or table cell/row of a Labour page."""
    soup = BeautifulSoup(html, "html.parser")
    dates = set()
    for element in soup.find_all(["li", "p", "td", "tr"]):
        iso = parse_text_date(element.get_text(" "), year)
        if iso:
            dates.add(iso)
    return dates


def parse_govhk_page(html: str, year: int, lang: str, source: str = "GovHK") -> List[Dict]:
    """Holiday records for ``year`` from one GovHK holiday page (English or Chinese)."""
    name_key = "name_zh" if lang == "zh" else "name_en"
    names = parse_govhk_rows(pick_rows(html), year)
    records = []
    for iso in sorted(names):
        if not iso.startswith(f"{year}-"):
            continue
        record = make_holiday(iso, source=source)
        record[name_key] = names[iso]
        records.append(record)
    return records

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for date normalization and the feed / ICS / HTML parsers."""

import logging
from datetime import date, datetime

import pytest

import hk_holidays_parse
from hk_holidays_parse import (
    event_dates,
    expand_rrule,
    extract_events,
    find_date,
    normalize_date,
    normalize_text,
    parse_feed_json,
    parse_govhk_page,
    parse_ics,
    parse_statutory_dates,
    parse_text_date,
    pick_rows,
)

ICS_TEXT = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//HK holidays test//EN",
    "BEGIN:VEVENT",
    "UID:new-year@test",
    "DTSTAMP:20240101T000000Z",
    "DTSTART;VALUE=DATE:20240101",
    "DTEND;VALUE=DATE:20240102",
    "SUMMARY:The first day of January",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:sar-day@test",
    "DTSTAMP:20240101T000000Z",
    "DTSTART;VALUE=DATE:20170701",
    "SUMMARY:Hong Kong Special Administrative Region Establishment Day",
    "RRULE:FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])

GOVHK_EN_HTML = """
<html><body><table>
  <tr><th>General holidays for 2024</th><th>Date</th><th>Day</th></tr>
  <tr><td>The first day of January</td><td>1 January</td><td>Monday</td></tr>
  <tr><td>Lunar New Year&#39;s Day</td><td>10 February</td><td>Saturday</td></tr>
  <tr><td>Christmas Day</td><td>25&nbsp;December</td><td>Wednesday</td></tr>
</table></body></html>
"""

GOVHK_TC_HTML = """
<html><body><table>
  <tr><th>二零二四年公眾假期</th><th>日期</th><th>星期</th></tr>
  <tr><td>一月一日</td><td>1月1日</td><td>星期一</td></tr>
  <tr><td>農曆年初一</td><td>2月10日</td><td>星期六</td></tr>
</table></body></html>
"""

LABOUR_HTML = """
<html><body>
<table>
  <tr><td>The first day of January</td><td>1 January 2024 (Monday)</td></tr>
  <tr><td>Lunar New Year's Day</td><td>10 February 2024</td></tr>
</table>
<ul><li>Labour Day (1 May)</li></ul>
<p>Last revision date: 2 December 2023</p>
</body></html>
"""


@pytest.mark.parametrize("value,expected", [
    ("20240101", "2024-01-01"),
    ("2024-01-01", "2024-01-01"),
    ("2024-01-01T00:00:00", "2024-01-01"),
    ("20240101T000000Z", "2024-01-01"),
    ("  20241225 ", "2024-12-25"),
    (["20240210", {"value": "DATE"}], "2024-02-10"),
    (date(2024, 7, 1), "2024-07-01"),
    (datetime(2024, 10, 1, 8, 30), "2024-10-01"),
])
def test_normalize_date_valid(value, expected):
    assert normalize_date(value) == expected


@pytest.mark.parametrize("value", [
    "", None, "abc", "2024-1-1", "24-01-01", "202401011", "20241345",
    "2024-02-30", "2023-02-29", "1 January 2024", 20240101, [],
])
def test_normalize_date_invalid_is_empty(value):
    assert normalize_date(value) == ""


def test_normalize_text_collapses_whitespace():
    assert normalize_text("  Lunar New \t Year\n Day ") == "Lunar New Year Day"
    assert normalize_text(None) == ""


@pytest.mark.parametrize("text,year,expected", [
    ("1 January 2024", 2020, "2024-01-01"),
    ("January 1, 2024", 2020, "2024-01-01"),
    ("Monday, 1 January", 2024, "2024-01-01"),
    ("1 January (Monday)", 2025, "2025-01-01"),
    ("25 Dec", 2024, "2024-12-25"),
    ("Sept 9th", 2024, "2024-09-09"),
    ("2024-10-11", 2020, "2024-10-11"),
    ("2024/1/1", 2020, "2024-01-01"),
    ("2024年2月10日", 2020, "2024-02-10"),
    ("2月10日（星期六）", 2024, "2024-02-10"),
    ("30 February", 2024, ""),
    ("no date here", 2024, ""),
    ("", 2024, ""),
])
def test_parse_text_date(text, year, expected):
    assert parse_text_date(text, year) == expected


def test_find_date_reports_match_offsets():
    text = "The first day of January 1 January Monday"
    start, end, iso = find_date(text, 2024)
    assert iso == "2024-01-01"
    assert text[start:end].strip() == "1 January"
    assert find_date("nothing", 2024) == (-1, -1, "")


def test_yearly_rule_gives_one_date_per_year():
    dates = expand_rrule("FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1", "2017-07-01", 2017, 2026)

    assert len(dates) == 10
    assert sorted({d[:4] for d in dates}) == [str(y) for y in range(2017, 2027)]
    assert all(d.endswith("-07-01") for d in dates)


def test_rrule_prefix_and_earlier_dtstart_are_clipped_to_window():
    dates = expand_rrule("RRULE:FREQ=YEARLY;BYMONTH=10;BYMONTHDAY=1", "20100101", 2017, 2026)
    assert dates[0] == "2017-10-01"
    assert dates[-1] == "2026-10-01"
    assert len(dates) == 10


def test_rrule_jcal_object_form():
    rule = {"freq": "YEARLY", "bymonth": 7, "bymonthday": 1}
    assert len(expand_rrule(rule, "2017-07-01", 2017, 2026)) == 10


def test_rrule_nth_weekday_of_month():
    # Second Sunday of March
    dates = expand_rrule("FREQ=YEARLY;BYMONTH=3;BYDAY=2SU", "2024-03-10", 2024, 2025)
    assert dates == ["2024-03-10", "2025-03-09"]


def test_rrule_bysetpos_last_weekday_of_month():
    dates = expand_rrule("FREQ=MONTHLY;BYDAY=MO,TU,WE,TH,FR;BYSETPOS=-1", "2024-01-31", 2024, 2024)
    assert len(dates) == 12
    assert "2024-03-29" in dates
    assert "2024-06-28" in dates
    assert "2024-08-30" in dates


def test_rrule_until_and_count():
    until = expand_rrule("FREQ=YEARLY;BYMONTH=12;BYMONTHDAY=25;UNTIL=20201231T000000Z", "2017-12-25", 2017, 2026)
    assert until == ["2017-12-25", "2018-12-25", "2019-12-25", "2020-12-25"]

    count = expand_rrule("FREQ=YEARLY;COUNT=3", "2018-05-01", 2017, 2026)
    assert count == ["2018-05-01", "2019-05-01", "2020-05-01"]


def test_rrule_last_weekday_of_month():
    # Last Monday of May
    dates = expand_rrule("FREQ=YEARLY;BYMONTH=5;BYDAY=-1MO", "2024-05-27", 2024, 2025)
    assert dates == ["2024-05-27", "2025-05-26"]


def test_rrule_jcal_object_until():
    rule = {"freq": "YEARLY", "bymonth": 12, "bymonthday": 25, "until": "2020-12-31T00:00:00Z"}
    assert expand_rrule(rule, "2017-12-25", 2017, 2026) == [
        "2017-12-25", "2018-12-25", "2019-12-25", "2020-12-25",
    ]


@pytest.mark.parametrize("rule", [
    "FREQ=YEARLY;INTERVAL=0",
    "FREQ=YEARLY;INTERVAL=-1",
    "FREQ=HOURLY",
    "FREQ=SECONDLY",
])
def test_rrule_that_cannot_finish_is_rejected(rule, caplog):
    with caplog.at_level(logging.WARNING, logger="hk_holidays_parse"):
        assert expand_rrule(rule, "2024-01-01", 2017, 2026) == []
    assert "malformed RRULE" in caplog.text


def test_rrule_daily_rule_is_expanded():
    assert expand_rrule("FREQ=DAILY;COUNT=3", "2024-02-10", 2024, 2024) == [
        "2024-02-10", "2024-02-11", "2024-02-12",
    ]


@pytest.mark.parametrize("rule", ["FREQ=SOMETIMES", "not a rule", "BYMONTH=1"])
def test_malformed_rrule_is_skipped_with_warning(rule, caplog):
    with caplog.at_level(logging.WARNING, logger="hk_holidays_parse"):
        assert expand_rrule(rule, "2024-01-01", 2017, 2026) == []
    assert "malformed RRULE" in caplog.text


def test_rrule_without_valid_start_is_empty():
    assert expand_rrule("FREQ=YEARLY", "not-a-date", 2017, 2026) == []


def test_event_dates_span_and_window():
    assert event_dates({"dtstart": "20240210", "dtend": "20240213"}, 2017, 2026) == [
        "2024-02-10", "2024-02-11", "2024-02-12",
    ]
    assert event_dates({"dtstart": "20160101"}, 2017, 2026) == []
    assert event_dates({"summary": "no start"}, 2017, 2026) == []


def test_event_dates_recurring_event():
    event = {"dtstart": "20170701", "rrule": "FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1"}
    assert len(event_dates(event, 2017, 2026)) == 10


def test_extract_events_jcal_array():
    data = [
        "vcalendar",
        [["prodid", {}, "text", "-//1823//EN"]],
        [
            ["vevent", [
                ["dtstart", {}, "date", "2024-01-01"],
                ["summary", {}, "text", "The first day of January"],
            ], []],
            ["vtimezone", [], []],
        ],
    ]
    assert extract_events(data) == [{"dtstart": "2024-01-01", "summary": "The first day of January"}]


def test_extract_events_jcal_object():
    data = {"vcalendar": [{
        "prodid": "-//1823//EN",
        "vevent": [
            {
                "dtstart": ["20240101", {"value": "DATE"}],
                "dtend": ["20240102", {"value": "DATE"}],
                "SUMMARY": "The first day of January",
                "uid": {"value": "abc"},
            },
            ["vevent", [["dtstart", {}, "date", "2024-02-10"]], []],
        ],
    }]}
    events = extract_events(data)
    assert events[0] == {
        "dtstart": "20240101",
        "dtend": "20240102",
        "summary": "The first day of January",
        "uid": "abc",
    }
    assert events[1] == {"dtstart": "2024-02-10"}


def test_extract_events_legacy_list():
    data = [{"date": "2024-01-01", "title": "The first day of January"}, "junk"]
    assert extract_events(data) == [{"date": "2024-01-01", "title": "The first day of January"}]


@pytest.mark.parametrize("data", [None, {}, {"foo": 1}, "text", 42, [], {"vcalendar": "x"}])
def test_extract_events_unknown_payload(data):
    assert extract_events(data) == []


def test_feed_with_no_parseable_events_is_empty_list():
    data = {"vcalendar": [{"vevent": [{"summary": "No date"}, {"dtstart": ["not-a-date"]}]}]}
    assert parse_feed_json(data, "en", 2017, 2026) == []


def test_parse_feed_json_chinese_names():
    data = {"vcalendar": [{"vevent": [
        {"dtstart": ["20241001", {"value": "DATE"}], "summary": "國慶日"},
        {"dtstart": ["20241001", {"value": "DATE"}], "summary": "重複"},
    ]}]}
    assert parse_feed_json(data, "zh", 2017, 2026) == [{
        "date": "2024-10-01",
        "name_en": "",
        "name_zh": "國慶日",
        "statutory": False,
        "source": "1823",
    }]


def test_parse_ics_with_recurrence():
    records = parse_ics(ICS_TEXT, "en", 2017, 2026, source="1823(local)")
    dates = [r["date"] for r in records]

    assert dates == sorted(dates)
    assert "2024-01-01" in dates
    assert sum(1 for d in dates if d.endswith("-07-01")) == 10
    assert len(records) == 11
    new_year = records[dates.index("2024-01-01")]
    assert new_year["name_en"] == "The first day of January"
    assert new_year["source"] == "1823(local)"


def test_parse_ics_chinese_summary():
    text = ICS_TEXT.replace("SUMMARY:The first day of January", "SUMMARY:一月一日")
    records = {r["date"]: r for r in parse_ics(text, "zh", 2024, 2024)}
    assert records["2024-01-01"]["name_zh"] == "一月一日"
    assert records["2024-01-01"]["name_en"] == ""


def test_parse_ics_event_with_two_rrules():
    text = ICS_TEXT.replace(
        "RRULE:FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1",
        "RRULE:FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1\r\nRRULE:FREQ=YEARLY;BYMONTH=10;BYMONTHDAY=1",
    )

    dates = [r["date"] for r in parse_ics(text, "en", 2024, 2025)]

    assert dates == ["2024-01-01", "2024-07-01", "2024-10-01", "2025-07-01", "2025-10-01"]


def test_parse_ics_drops_rule_that_cannot_finish(caplog):
    text = ICS_TEXT.replace(
        "RRULE:FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1",
        "RRULE:FREQ=YEARLY;INTERVAL=0",
    )

    with caplog.at_level(logging.WARNING, logger="hk_holidays_parse"):
        dates = [r["date"] for r in parse_ics(text, "en", 2017, 2025)]

    # the event keeps its own start date only
    assert dates == ["2017-07-01", "2024-01-01"]
    assert "malformed RRULE" in caplog.text


def test_parse_ics_skips_event_that_cannot_be_read(monkeypatch, caplog):
    convert = hk_holidays_parse._vevent_to_event

    def fail_on_sar_day(component):
        if str(component.get("uid")) == "sar-day@test":
            raise AttributeError("'list' object has no attribute 'to_ical'")
        return convert(component)

    monkeypatch.setattr(hk_holidays_parse, "_vevent_to_event", fail_on_sar_day)
    with caplog.at_level(logging.WARNING, logger="hk_holidays_parse"):
        records = parse_ics(ICS_TEXT, "en", 2017, 2026)

    assert [r["date"] for r in records] == ["2024-01-01"]
    assert "Skipping unreadable VEVENT sar-day@test" in caplog.text


def test_event_dates_several_rules():
    event = {"dtstart": "20240101", "rrule": ["FREQ=YEARLY;BYMONTH=1;BYMONTHDAY=1", "FREQ=YEARLY;BYMONTH=7;BYMONTHDAY=1"]}
    assert event_dates(event, 2024, 2024) == ["2024-01-01", "2024-07-01"]


@pytest.mark.parametrize("text", ["", "   ", None, "this is not a calendar"])
def test_parse_ics_unparseable_is_empty(text):
    assert parse_ics(text, "en", 2017, 2026) == []


def test_pick_rows_falls_back_to_list_items():
    assert pick_rows("<ul><li>1 July</li><li> </li><li>1 October</li></ul>") == ["1 July", "1 October"]
    assert pick_rows(GOVHK_EN_HTML)[1] == "The first day of January 1 January Monday"


def test_parse_govhk_page_english():
    records = parse_govhk_page(GOVHK_EN_HTML, 2024, "en")
    assert [(r["date"], r["name_en"]) for r in records] == [
        ("2024-01-01", "The first day of January"),
        ("2024-02-10", "Lunar New Year's Day"),
        ("2024-12-25", "Christmas Day"),
    ]
    assert all(r["name_zh"] == "" and r["source"] == "GovHK" for r in records)


def test_parse_govhk_page_chinese():
    records = parse_govhk_page(GOVHK_TC_HTML, 2024, "zh", source="GovHK(local)")
    assert [(r["date"], r["name_zh"]) for r in records] == [
        ("2024-01-01", "一月一日"),
        ("2024-02-10", "農曆年初一"),
    ]


def test_parse_govhk_page_date_first_rows():
    html = "<ul><li>1 July - HKSAR Establishment Day (Monday)</li><li>2 July</li></ul>"
    records = parse_govhk_page(html, 2024, "en")
    assert [(r["date"], r["name_en"]) for r in records] == [("2024-07-01", "HKSAR Establishment Day")]


def test_parse_statutory_dates():
    assert parse_statutory_dates(LABOUR_HTML, 2024) == {
        "2024-01-01", "2024-02-10", "2024-05-01", "2023-12-02",
    }

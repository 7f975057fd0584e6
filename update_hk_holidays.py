#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Build Hong Kong holiday JSON files from government sources.

This script collects general holidays from the 1823 calendar feed (recent
years) and the GovHK holiday pages (earlier years, and Chinese names the feed
lacks), optionally marks statutory holidays from the Labour Department pages,
and writes one JSON file per year plus a combined file and a validation report.

Usage:
  python update_hk_holidays.py
  python update_hk_holidays.py --statutory
  python update_hk_holidays.py --start-year 2024 --end-year 2026 --inputs-dir inputs
"""

import json
import os
import sys
import argparse
import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Set, Union

from hk_holidays_fetch import get_feed_records, get_govhk_records, get_statutory_dates
from hk_holidays_report import render_report, validate_year

logger = logging.getLogger("update_hk_holidays")

START_YEAR = 2017
END_YEAR = 2026
# First year covered by the 1823 feed; earlier years come from GovHK pages
FEED_FIRST_YEAR = 2024

YEAR_FILE = "company_holidays_{year}.json"
ALL_FILE = "company_holidays_ALL.json"
REPORT_FILE = "validation.md"

NAME_KEYS = ("name_en", "name_zh")


def load_existing_holidays(file_path: Union[str, Path]) -> List[Dict]:
    """
    Load existing holidays from JSON file.

    Args:
        file_path: Path to JSON file

    Returns:
        List of holiday dictionaries, or empty list if file doesn't exist
    """
    if not os.path.exists(file_path):
        return []

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, list):
                return data
            logger.warning("%s does not contain a list. Treating as empty.", file_path)
            return []
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse %s: %s. Treating as empty.", file_path, e)
        return []


def save_holidays_to_json(file_path: Union[str, Path], holidays: List[Dict]):
    """
    Save holidays to JSON file (UTF-8, two-space indent).

    Args:
        file_path: Path to JSON file
        holidays: List of holiday dictionaries
    """
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(holidays, f, ensure_ascii=False, indent=2)


def merge_holidays(existing: Iterable[Dict], new_holidays: Iterable[Dict]) -> List[Dict]:
    """
    Merge new holidays with existing ones, one entry per date.

    The first entry seen for a date is kept; its empty names are filled from
    later entries on the same date.

    Args:
        existing: List of existing holiday dictionaries
        new_holidays: List of new holiday dictionaries to add

    Returns:
        Merged list of holidays sorted by date
    """
    merged: Dict[str, Dict] = {}
    for holiday in list(existing) + list(new_holidays):
        current = merged.get(holiday["date"])
        if current is None:
            merged[holiday["date"]] = dict(holiday)
            continue
        for key in NAME_KEYS:
            if not current.get(key) and holiday.get(key):
                current[key] = holiday[key]
        current["statutory"] = bool(current.get("statutory") or holiday.get("statutory"))

    return [merged[d] for d in sorted(merged)]


def dedupe_by_date(holidays: Iterable[Dict]) -> List[Dict]:
    """Keep one holiday per date (first seen), sorted by date."""
    return merge_holidays(holidays, [])


def fill_chinese_names(holidays: List[Dict], govhk_holidays: Iterable[Dict]) -> int:
    """Fill empty name_zh from GovHK entries on the same date; returns how many were filled."""
    zh_names = {h["date"]: h.get("name_zh", "") for h in govhk_holidays}
    filled = 0
    for holiday in holidays:
        if not holiday.get("name_zh") and zh_names.get(holiday["date"]):
            holiday["name_zh"] = zh_names[holiday["date"]]
            filled += 1
    return filled


def mark_statutory(holidays: List[Dict], statutory_dates: Set[str]) -> int:
    for holiday in holidays:
        holiday["statutory"] = holiday["date"] in statutory_dates
    return sum(1 for h in holidays if h["statutory"])


def group_by_year(holidays: Iterable[Dict]) -> Dict[int, List[Dict]]:
    by_year: Dict[int, List[Dict]] = defaultdict(list)
    for holiday in holidays:
        by_year[int(holiday["date"][:4])].append(holiday)
    return dict(by_year)


def build_year(
    year: int,
    feed_holidays: List[Dict],
    inputs_dir: Union[str, Path],
    include_statutory: bool
) -> List[Dict]:
    """
    Build the holiday list for one year.

    Args:
        year: Year to build
        feed_holidays: This year's entries from the 1823 feed (may be empty)
        inputs_dir: Directory containing local copies of the sources
        include_statutory: If True, mark statutory holidays from the Labour pages

    Returns:
        Holidays sorted by date, unique per date; empty if no source had data
    """
    if year >= FEED_FIRST_YEAR and feed_holidays:
        holidays = dedupe_by_date(feed_holidays)
        if any(not h["name_zh"] for h in holidays):
            filled = fill_chinese_names(holidays, get_govhk_records(year, "zh", inputs_dir))
            logger.info("%d: filled %d Chinese names from GovHK", year, filled)
    else:
        holidays = merge_holidays(
            get_govhk_records(year, "en", inputs_dir),
            get_govhk_records(year, "zh", inputs_dir),
        )
        logger.info("%d: GovHK parsed %d holidays", year, len(holidays))

    if include_statutory and holidays:
        statutory_dates = get_statutory_dates(year, inputs_dir)
        marked = mark_statutory(holidays, statutory_dates)
        logger.info("%d: %d of %d holidays marked statutory", year, marked, len(holidays))

    return holidays


def run(
    start_year: int = START_YEAR,
    end_year: int = END_YEAR,
    inputs_dir: Union[str, Path] = "inputs",
    data_dir: Union[str, Path] = "data",
    report_dir: Union[str, Path] = "reports",
    include_statutory: bool = False
) -> List[Dict]:
    """
    Build and write every year's holidays plus the combined file and report.

    Returns:
        Validation rows, one per year that produced holidays
    """
    data_dir = Path(data_dir)
    report_dir = Path(report_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    report_dir.mkdir(parents=True, exist_ok=True)

    feed_by_year: Dict[int, List[Dict]] = {}
    if end_year >= FEED_FIRST_YEAR:
        feed_start = max(start_year, FEED_FIRST_YEAR)
        feed = merge_holidays(
            get_feed_records("en", inputs_dir, feed_start, end_year),
            get_feed_records("zh", inputs_dir, feed_start, end_year),
        )
        feed_by_year = group_by_year(feed)

    all_holidays: List[Dict] = []
    rows: List[Dict] = []
    skipped: List[int] = []

    for year in range(start_year, end_year + 1):
        holidays = build_year(year, feed_by_year.get(year, []), inputs_dir, include_statutory)
        year_path = data_dir / YEAR_FILE.format(year=year)
        if not holidays:
            logger.warning("%d: no holidays from any source, skipping this year", year)
            skipped.append(year)
            # a file left from an earlier run would disagree with the ALL file and report
            if year_path.exists():
                year_path.unlink()
                logger.info("Removed stale %s", year_path)
            continue

        save_holidays_to_json(year_path, holidays)
        rows.append(validate_year(year, holidays))
        all_holidays.extend(holidays)

    all_path = data_dir / ALL_FILE
    previous_dates = {h.get("date") for h in load_existing_holidays(all_path)}
    current_dates = {h["date"] for h in all_holidays}
    save_holidays_to_json(all_path, all_holidays)
    logger.info(
        "Wrote %d holidays to %s (%d new, %d removed since last run)",
        len(all_holidays), all_path,
        len(current_dates - previous_dates), len(previous_dates - current_dates),
    )

    report_path = report_dir / REPORT_FILE
    report_path.write_text(render_report(rows, skipped), encoding="utf-8")
    logger.info("Validation report written to %s", report_path)
    return rows


def main(argv: List[str] = None):
    """Main entry point for the script."""
    parser = argparse.ArgumentParser(
        description="Build Hong Kong holiday JSON files from government sources.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # General holidays for 2017-2026
  python update_hk_holidays.py

  # Also mark statutory holidays from the Labour Department pages
  python update_hk_holidays.py --statutory

  # Offline: use manually downloaded copies only
  python update_hk_holidays.py --inputs-dir ./inputs
        """
    )

    parser.add_argument(
        "--statutory",
        action="store_true",
        help="Cross-reference Labour Department pages to mark statutory holidays"
    )
    parser.add_argument(
        "--start-year",
        type=int,
        default=START_YEAR,
        help=f"Start year (default: {START_YEAR})"
    )
    parser.add_argument(
        "--end-year",
        type=int,
        default=END_YEAR,
        help=f"End year (default: {END_YEAR})"
    )
    parser.add_argument(
        "--inputs-dir",
        default=os.getenv("HK_HOLIDAYS_INPUTS", "inputs"),
        help="Directory with local copies of the sources (or set HK_HOLIDAYS_INPUTS; default: inputs)"
    )
    parser.add_argument(
        "--data-dir",
        default="data",
        help="Directory for the JSON output (default: data)"
    )
    parser.add_argument(
        "--report-dir",
        default="reports",
        help="Directory for the validation report (default: reports)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.start_year > args.end_year:
        logger.error("start-year must be <= end-year")
        sys.exit(1)

    logger.info("Year range: %d-%d", args.start_year, args.end_year)
    logger.info("Statutory cross-reference: %s", "ON" if args.statutory else "OFF")

    try:
        rows = run(
            start_year=args.start_year,
            end_year=args.end_year,
            inputs_dir=args.inputs_dir,
            data_dir=args.data_dir,
            report_dir=args.report_dir,
            include_statutory=args.statutory,
        )
    except Exception:
        logger.exception("Unexpected error while building holidays")
        sys.exit(1)

    logger.info("Done. %d records.", sum(row["total"] for row in rows))


if __name__ == "__main__":
    main()

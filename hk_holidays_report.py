#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Completeness checks for generated holiday lists and the Markdown report."""

from typing import Dict, Iterable, List

REPORT_COLUMNS = [
    ("year", "Year"),
    ("total", "Records"),
    ("missing_zh", "Missing ZH"),
    ("missing_en", "Missing EN"),
    ("duplicate_dates", "Duplicate Dates"),
    ("statutory", "Statutory Marked"),
]


def validate_year(year: int, holidays: List[Dict]) -> Dict:
    """
    Count completeness problems in one year's holiday list.

    Args:
        year: Year the list belongs to
        holidays: List of holiday dictionaries

    Returns:
        Dictionary with total, missing_zh, missing_en, duplicate_dates and
        statutory counts
    """
    dates = [h["date"] for h in holidays]
    return {
        "year": year,
        "total": len(holidays),
        "missing_zh": sum(1 for h in holidays if not h.get("name_zh")),
        "missing_en": sum(1 for h in holidays if not h.get("name_en")),
        "duplicate_dates": len(dates) - len(set(dates)),
        "statutory": sum(1 for h in holidays if h.get("statutory")),
    }


def render_report(rows: List[Dict], skipped_years: Iterable[int] = ()) -> str:
    lines = [
        "# Validation Report",
        "",
        "| " + " | ".join(title for _, title in REPORT_COLUMNS) + " |",
        "| " + " | ".join("-" * len(title) for _, title in REPORT_COLUMNS) + " |",
    ]
    for row in rows:
        lines.append("| " + " | ".join(str(row[key]) for key, _ in REPORT_COLUMNS) + " |")

    lines += ["", f"Total records: {sum(row['total'] for row in rows)}"]
    skipped = sorted(skipped_years)
    if skipped:
        lines.append(f"Skipped years (no source available): {', '.join(str(y) for y in skipped)}")
    return "\n".join(lines) + "\n"

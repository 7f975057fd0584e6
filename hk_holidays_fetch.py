#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Retrieve Hong Kong holiday sources, preferring local copies over the network.

Place manually downloaded copies in the inputs directory to run offline:
  1823_en.json / 1823_en.ics          1823 calendar feed (English)
  1823_tc.json / 1823_zh.json / .ics  1823 calendar feed (Chinese)
  govhk_YYYY_en.html / govhk_YYYY_tc.html
  labour_YYYY.html

Notes:
- Network failures are logged and retried with linear backoff; a source that
  is still unavailable afterwards yields an empty result, never an exception.
"""

import json
import logging
import ssl
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union
import urllib.request
import urllib.error

import certifi
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
    wait_random,
)

from hk_holidays_parse import parse_feed_json, parse_govhk_page, parse_ics, parse_statutory_dates

logger = logging.getLogger(__name__)

FEED_BASE = "https://www.1823.gov.hk/common/ical"
GOVHK_URL = "https://www.gov.hk/{lang}/about/abouthk/holiday/{year}.htm"
LABOUR_YEAR_URL = "https://www.labour.gov.hk/eng/news/latest_holidays{year}.htm"
LABOUR_SUMMARY_URL = "https://www.labour.gov.hk/eng/news/holidays_list.htm"

# The Chinese feed has been published under both names
FEED_FILES: Dict[str, List[str]] = {
    "en": ["en"],
    "zh": ["tc", "zh"],
}
GOVHK_LANGS = {"en": "en", "zh": "tc"}

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X) AppleWebKit/537.36 (KHTML, like Gecko) Chrome Safari",
    "Accept-Language": "zh-HK,zh-TW,zh,en;q=0.9",
}

PAGE_TRIES = 3
PAGE_TIMEOUT = 15
FEED_TRIES = 2
FEED_TIMEOUT = 12
BACKOFF_SECONDS = 0.5
BACKOFF_JITTER = 0.3


def http_get(url: str, timeout: float = PAGE_TIMEOUT) -> str:
    """
    Perform HTTP GET request and return the decoded body.

    Args:
        url: URL to fetch
        timeout: Per-request timeout in seconds

    Returns:
        Response body as text

    Raises:
        RuntimeError: If HTTP request fails
    """
    req = urllib.request.Request(url, headers=DEFAULT_HEADERS)

    # Create SSL context with certifi's CA bundle
    ssl_context = ssl.create_default_context(cafile=certifi.where())

    try:
        with urllib.request.urlopen(req, timeout=timeout, context=ssl_context) as resp:
            charset = resp.headers.get_content_charset() or "utf-8"
            return resp.read().decode(charset, errors="replace")
    except urllib.error.HTTPError as e:
        raise RuntimeError(f"HTTP {e.code} fetching {url}") from e
    except urllib.error.URLError as e:
        raise RuntimeError(f"Network error fetching {url}: {e.reason}") from e
    except (TimeoutError, ConnectionError) as e:
        raise RuntimeError(f"Network error fetching {url}: {e}") from e


def fetch_safe(url: str, as_json: bool = False, tries: int = PAGE_TRIES, timeout: float = PAGE_TIMEOUT) -> Any:
    """
    Fetch a URL with a fixed number of attempts and linear backoff.

    Args:
        url: URL to fetch
        as_json: Decode the body as JSON; invalid JSON counts as a failed attempt
        tries: Number of attempts
        timeout: Per-request timeout in seconds

    Returns:
        Body text (or decoded JSON), or None once every attempt has failed
    """
    def log_failure(retry_state: RetryCallState) -> None:
        logger.warning(
            "Fetch %d/%d failed: %s (%s)",
            retry_state.attempt_number, tries, url, retry_state.outcome.exception(),
        )

    retrying = Retrying(
        retry=retry_if_exception_type((RuntimeError, ValueError)),
        stop=stop_after_attempt(tries),
        wait=wait_incrementing(start=BACKOFF_SECONDS, increment=BACKOFF_SECONDS) + wait_random(0, BACKOFF_JITTER),
        after=log_failure,
        sleep=time.sleep,
        retry_error_callback=lambda retry_state: None,
    )

    def attempt() -> Any:
        body = http_get(url, timeout)
        return json.loads(body) if as_json else body

    return retrying(attempt)


def read_local(path: Union[str, Path], as_json: bool = False) -> Any:
    """Return a cached input file's text (or JSON), or None if it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        text = path.read_text(encoding="utf-8")
        return json.loads(text) if as_json else text
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning("Ignoring unreadable input %s: %s", path, e)
        return None


def get_feed_records(lang: str, inputs_dir: Union[str, Path], start_year: int, end_year: int) -> List[Dict]:
    """
    Load one language of the 1823 holiday feed.

    Tried in order: local JSON, local ICS, remote JSON, remote ICS. The first
    candidate that yields any records wins.

    Args:
        lang: "en" or "zh"
        inputs_dir: Directory holding local copies
        start_year: First year kept (inclusive)
        end_year: Last year kept (inclusive)

    Returns:
        Holiday records with only the matching name field filled
    """
    inputs = Path(inputs_dir)
    names = FEED_FILES[lang]

    for name in names:
        data = read_local(inputs / f"1823_{name}.json", as_json=True)
        records = parse_feed_json(data, lang, start_year, end_year, source="1823(local)")
        if records:
            return records
    for name in names:
        text = read_local(inputs / f"1823_{name}.ics")
        records = parse_ics(text, lang, start_year, end_year, source="1823(local)")
        if records:
            return records

    for name in names:
        data = fetch_safe(f"{FEED_BASE}/{name}.json", as_json=True, tries=FEED_TRIES, timeout=FEED_TIMEOUT)
        records = parse_feed_json(data, lang, start_year, end_year, source="1823")
        if records:
            return records
    for name in names:
        text = fetch_safe(f"{FEED_BASE}/{name}.ics", tries=FEED_TRIES, timeout=FEED_TIMEOUT)
        records = parse_ics(text, lang, start_year, end_year, source="1823")
        if records:
            return records

    logger.warning("1823 %s feed not available (local nor remote)", lang)
    return []


def _load_page(local_path: Path, urls: List[str]) -> Optional[Tuple[str, bool]]:
    # (html, is_local) from the first source that has content
    html = read_local(local_path)
    if html:
        return html, True
    for url in urls:
        html = fetch_safe(url, tries=PAGE_TRIES, timeout=PAGE_TIMEOUT)
        if html:
            return html, False
    return None


def get_govhk_records(year: int, lang: str, inputs_dir: Union[str, Path]) -> List[Dict]:
    """Holiday records for one year from the GovHK page in one language."""
    page_lang = GOVHK_LANGS[lang]
    loaded = _load_page(
        Path(inputs_dir) / f"govhk_{year}_{page_lang}.html",
        [GOVHK_URL.format(lang=page_lang, year=year)],
    )
    if loaded is None:
        logger.warning("GovHK %s page unavailable for %d", page_lang.upper(), year)
        return []
    html, is_local = loaded
    return parse_govhk_page(html, year, lang, source="GovHK(local)" if is_local else "GovHK")


def get_statutory_dates(year: int, inputs_dir: Union[str, Path]) -> Set[str]:
    """
    Statutory holiday dates for one year from the Labour Department.

    Returns:
        Set of ISO dates; empty when no page could be loaded
    """
    loaded = _load_page(
        Path(inputs_dir) / f"labour_{year}.html",
        [LABOUR_YEAR_URL.format(year=year), LABOUR_SUMMARY_URL],
    )
    if loaded is None:
        logger.warning("Labour page unavailable for %d; statutory flags skipped", year)
        return set()
    dates = parse_statutory_dates(loaded[0], year)
    return {d for d in dates if d.startswith(f"{year}-")}

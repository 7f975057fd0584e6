# -*- coding: utf-8 -*-
import pytest

import hk_holidays_fetch


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    """Fail every HTTP request and skip backoff sleeps; tests opt back in by patching http_get."""
    calls = []

    def refuse(url, timeout=None):
        calls.append(url)
        raise RuntimeError(f"Network error fetching {url}: offline")

    monkeypatch.setattr(hk_holidays_fetch, "http_get", refuse)
    monkeypatch.setattr(hk_holidays_fetch.time, "sleep", lambda seconds: None)
    return calls

"""Ranked selector fallback.

Equivalent controls (a user-menu button, a login submit button, a tab header)
carry different markup across application states and builds. Callers pass an
ordered list of candidate selectors; the first one that matches wins and is
reported so that selector drift can be spotted in the logs.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from playwright.sync_api import Error as PWError

from ..executor.result import CandidateResolution

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from playwright.sync_api import Page

logger = logging.getLogger(__name__)

DEFAULT_POLL_MS = 250


def dedupe_candidates(candidates: Iterable[str]) -> list[str]:
    """Drop blank and repeated selectors while preserving order."""
    seen = set()
    unique = []
    for c in candidates:
        c = c.strip()
        if c and c not in seen:
            seen.add(c)
            unique.append(c)
    return unique


def split_selector_list(selector: str) -> list[str]:
    """Split a comma-joined CSS selector list into ordered candidates.

    Commas inside brackets, parentheses or quotes do not split, so
    ``button:has-text("Save, close")`` stays intact.
    """
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    buf: list[str] = []
    for ch in selector:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth = max(0, depth - 1)
        elif ch == "," and depth == 0:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    parts.append("".join(buf))
    return dedupe_candidates(parts)


def _count(page: Page, selector: str) -> int:
    try:
        return page.locator(selector).count()
    except PWError as e:
        # Invalid selector syntax or a detached frame: not a match
        logger.debug("Candidate %r raised %s", selector, e)
        return 0


def resolve_candidates(
    page: Page,
    candidates: Sequence[str],
    timeout_ms: int = 0,
    poll_ms: int = DEFAULT_POLL_MS,
) -> CandidateResolution:
    """Return the first candidate that matches at least one element.

    Candidates are tried in order; full passes repeat until ``timeout_ms``
    elapses (a single pass when it is 0). Never raises for "nothing matched";
    the caller decides how severe that is.
    """
    ordered = tuple(dedupe_candidates(candidates))
    start = time.monotonic()
    deadline = start + max(0, timeout_ms) / 1000.0

    while True:
        for selector in ordered:
            count = _count(page, selector)
            if count > 0:
                elapsed = (time.monotonic() - start) * 1000
                logger.debug("Resolved %r (%d matches) in %.0fms", selector, count, elapsed)
                return CandidateResolution(selector, count, elapsed, ordered)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        page.wait_for_timeout(min(poll_ms, max(1, int(remaining * 1000))))

    elapsed = (time.monotonic() - start) * 1000
    logger.debug("No candidate matched after %.0fms: %s", elapsed, list(ordered))
    return CandidateResolution(None, 0, elapsed, ordered)

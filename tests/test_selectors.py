"""Tests for ranked selector fallback."""

from __future__ import annotations

from stubs import FakePage

from docshots.core.resolver.selectors import (
    dedupe_candidates,
    resolve_candidates,
    split_selector_list,
)

MENU_CANDIDATES = [
    'button[aria-label*="user" i]',
    ".user-button",
    "mat-toolbar button >> nth=-1",
]


class TestResolveCandidates:
    def test_single_matching_candidate_is_returned(self):
        page = FakePage(matches={".user-button": 1})

        res = resolve_candidates(page, MENU_CANDIDATES)

        assert res.found
        assert res.selector == ".user-button"
        assert res.count == 1
        assert res.attempted == tuple(MENU_CANDIDATES)

    def test_priority_order_wins_over_later_matches(self):
        page = FakePage(matches={MENU_CANDIDATES[0]: 2, ".user-button": 5})

        res = resolve_candidates(page, MENU_CANDIDATES)

        assert res.selector == MENU_CANDIDATES[0]
        assert res.count == 2
        # Later candidates are never queried once one matched
        assert page.count_calls == [MENU_CANDIDATES[0]]

    def test_no_match_returns_not_found(self):
        page = FakePage()

        res = resolve_candidates(page, MENU_CANDIDATES, timeout_ms=0)

        assert not res.found
        assert res.selector is None
        assert res.count == 0
        assert page.count_calls == MENU_CANDIDATES

    def test_no_match_within_timeout_does_not_raise(self):
        page = FakePage()

        res = resolve_candidates(page, MENU_CANDIDATES, timeout_ms=60, poll_ms=10)

        assert not res.found
        assert res.elapsed_ms >= 60
        # Several passes were made before giving up
        assert len(page.count_calls) > len(MENU_CANDIDATES)

    def test_invalid_selector_counts_as_no_match(self):
        page = FakePage(matches={".user-button": 1})
        page.invalid.add(MENU_CANDIDATES[0])

        res = resolve_candidates(page, MENU_CANDIDATES)

        assert res.selector == ".user-button"

    def test_element_appearing_later_is_found_by_polling(self):
        calls = {"n": 0}

        def appears_on_third_check():
            calls["n"] += 1
            return 1 if calls["n"] >= 3 else 0

        page = FakePage(matches={".late": appears_on_third_check})

        res = resolve_candidates(page, [".late"], timeout_ms=2000, poll_ms=5)

        assert res.found
        assert calls["n"] == 3

    def test_empty_candidate_list(self):
        res = resolve_candidates(FakePage(), [], timeout_ms=0)
        assert not res.found
        assert res.attempted == ()


class TestSelectorLists:
    def test_split_on_top_level_commas(self):
        assert split_selector_list(
            'input[name="Username"], input[name="username"], input#Username'
        ) == ['input[name="Username"]', 'input[name="username"]', "input#Username"]

    def test_commas_inside_quotes_and_brackets_do_not_split(self):
        selector = 'button:has-text("Save, close"), [data-x="a,b"], :is(a, b)'
        assert split_selector_list(selector) == [
            'button:has-text("Save, close")',
            '[data-x="a,b"]',
            ":is(a, b)",
        ]

    def test_dedupe_preserves_order_and_drops_blanks(self):
        assert dedupe_candidates(["b", " a ", "", "b", "c"]) == ["b", "a", "c"]

"""Tests for the fuzzy string matcher."""

import random
import string
import time

import pytest

from scriptwell.matching import fuzzy
from scriptwell.matching.fuzzy import MAX_CANDIDATES, MAX_CONTENT_SIZE, find_best_match, levenshtein, similarity

CONTENT = (
    "import os\n"
    "\n"
    "def checkout(items, discount):\n"
    "    total = compute_total(items, discount)\n"
    "    return apply_tax(total)\n"
    "\n"
    "def refund(order):\n"
    "    return order.total\n"
)


class TestDistance:
    """Levenshtein distance and similarity."""

    def test_identical_strings(self) -> None:
        """Identical strings have distance 0 and similarity 1.0."""
        assert levenshtein("kitten", "kitten") == 0
        assert similarity("kitten", "kitten") == 1.0

    def test_classic_example(self) -> None:
        """kitten -> sitting needs three edits."""
        assert levenshtein("kitten", "sitting") == 3

    def test_bounded_distance_stops_early(self) -> None:
        """Exceeding max_distance returns max_distance + 1."""
        assert levenshtein("aaaaaaaa", "bbbbbbbb", max_distance=2) == 3

    def test_empty_side_has_zero_similarity(self) -> None:
        assert similarity("", "abc") == 0.0


class TestFindBestMatch:
    """Locating a target in file content."""

    def test_exact_match_has_similarity_one(self) -> None:
        """An exact substring is found with similarity 1.0."""
        target = "    return apply_tax(total)\n"
        match = find_best_match(CONTENT, target)

        assert match is not None
        assert match.similarity == 1.0
        assert match.strategy == "exact"
        assert CONTENT[match.start:match.end] == target
        assert match.start_line == 5

    def test_near_match_found_above_threshold(self) -> None:
        """A one-character typo still locates the right line."""
        match = find_best_match(CONTENT, "    total = compute_total(items, discont)")

        assert match is not None
        assert match.similarity >= 0.85
        assert "discount" in match.matched_text
        assert match.start_line == 4
        assert match.distance >= 1

    def test_no_match_below_threshold(self) -> None:
        """Unrelated text returns None instead of a guess."""
        assert find_best_match(CONTENT, "class Completely(Different): pass") is None

    def test_empty_target_rejected(self) -> None:
        with pytest.raises(ValueError):
            find_best_match(CONTENT, "")

    def test_hint_line_prefers_nearest_duplicate(self) -> None:
        """With duplicates, the occurrence nearest the hint wins."""
        content = "x = 1\ny = 2\nx = 1\n"
        match = find_best_match(content, "x = 1", hint_line=3)

        assert match is not None
        assert match.start_line == 3

    def test_crlf_content_maps_back_to_original_offsets(self) -> None:
        """Offsets refer to the original CRLF text."""
        content = "first\r\nsecond line\r\nthird\r\n"
        match = find_best_match(content, "second line\nthird")

        assert match is not None
        assert content[match.start:match.end] == "second line\r\nthird"

    def test_banded_distance_agrees_with_full_distance(self) -> None:
        """Within the bound, the banded result is the exact distance."""
        pairs = [("kitten", "sitting"), ("flaw", "lawn"), ("compute_total", "compte_totals")]
        for a, b in pairs:
            full = levenshtein(a, b)
            assert levenshtein(a, b, max_distance=full) == full
            assert levenshtein(a, b, max_distance=full - 1) == full


def _random_text(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(string.ascii_lowercase + " ") for _ in range(length))


class TestSearchBounds:
    """Worst-case inputs finish quickly and respect the work caps."""

    def test_single_long_line_is_bounded(self) -> None:
        """An absent target against one 20 KB line returns promptly."""
        rng = random.Random(7)
        content = _random_text(rng, 20_000)
        target = _random_text(rng, 80)

        started = time.perf_counter()
        assert find_best_match(content, target) is None
        assert time.perf_counter() - started < 10

    def test_many_long_lines_are_bounded(self) -> None:
        """2000 lines of 200 characters and an absent target return promptly."""
        rng = random.Random(11)
        content = "\n".join(_random_text(rng, 200) for _ in range(2000))
        target = _random_text(rng, 60)

        started = time.perf_counter()
        assert find_best_match(content, target) is None
        assert time.perf_counter() - started < 10

    def test_distance_computations_capped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Thousands of same-length lines still cost at most MAX_CANDIDATES distances."""
        calls = 0
        real = fuzzy.levenshtein

        def counting(a: str, b: str, max_distance: int | None = None) -> int:
            nonlocal calls
            calls += 1
            return real(a, b, max_distance)

        monkeypatch.setattr(fuzzy, "levenshtein", counting)
        content = "\n".join(f"value_{i:05d} = lookup({i:05d})" for i in range(5000))

        assert find_best_match(content, "unrelated = something(else)") is None
        assert 0 < calls <= MAX_CANDIDATES

    def test_huge_content_searches_only_head_and_tail(self) -> None:
        """Past the size limit, a near match in the middle is not searched."""
        filler = ("x" * 99 + "\n") * (MAX_CONTENT_SIZE // 100 + 20_000)
        lines = filler.split("\n")
        near = "    total = compute_totl(items)"
        target = "    total = compute_total(items)"

        middle = list(lines)
        middle[len(lines) // 2] = near
        assert find_best_match("\n".join(middle), target) is None

        tail = list(lines)
        tail[-5] = near
        match = find_best_match("\n".join(tail), target)
        assert match is not None
        assert match.matched_text == near

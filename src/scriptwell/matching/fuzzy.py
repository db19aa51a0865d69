"""Levenshtein-based locator for edit targets.

Used by edit_file when the model's ``old_string`` does not match the file
byte for byte (whitespace drift, a renamed variable, a stale line).

Search order:
1. Exact substring match (similarity 1.0).
2. Anchor search: lines equal to (or containing) the target's first and last
   lines are paired, and the spanned region is scored.
3. Line-window search: windows of the target's line count (±1) are scored,
   around the hint line when one is given.

Every candidate is scored with ``1 - levenshtein(a, b) / max(len(a), len(b))``.
Distance computations and the cells they touch are both capped, a single-line
target is only slid along lines that share a word with it, and for very large
inputs only the head and tail of the file are searched, so running time stays
close to linear in the file size.
"""

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.85
HINTED_MIN_SIMILARITY = 0.80
CONTEXT_WINDOW = 50
"""Lines around an anchor (or hint) that a candidate region may span."""

MAX_CONTENT_SIZE = 5_000_000
"""Above this many characters only the head and tail are searched."""

MAX_CANDIDATES = 500
"""Upper bound on distance computations per search, in-line refinement included."""

MAX_DP_CELLS = 3_000_000
"""Upper bound on Levenshtein table cells computed per search."""

MAX_ANCHORS = 20
"""Anchors considered per end of the target."""


@dataclass(frozen=True, slots=True)
class FuzzyMatch:
    """A located span in the searched content."""

    start: int
    """Start offset (inclusive) into the original content."""

    end: int
    """End offset (exclusive) into the original content."""

    matched_text: str
    """The content between start and end."""

    similarity: float
    """1.0 for exact matches."""

    start_line: int
    """1-based line of ``start``."""

    end_line: int
    """1-based line of ``end``."""

    strategy: Literal["exact", "anchor", "line_window"]
    """Which search stage produced the match."""

    distance: int = 0
    """Levenshtein distance between matched text and the target."""


# =============================================================================
# Distance
# =============================================================================


def levenshtein(a: str, b: str, max_distance: int | None = None) -> int:
    """Edit distance between ``a`` and ``b``.

    With ``max_distance`` only the diagonal band of width
    ``2 * max_distance + 1`` is computed, and the result is
    ``max_distance + 1`` once the distance is known to exceed it.
    """
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    la, lb = len(a), len(b)
    if lb == 0:
        return la if max_distance is None else min(la, max_distance + 1)
    if max_distance is None:
        return _full_distance(a, b)
    if la - lb > max_distance:
        return max_distance + 1

    cap = max_distance + 1
    previous = [j if j < cap else cap for j in range(lb + 1)]
    for i, ca in enumerate(a, 1):
        lo = max(1, i - max_distance)
        hi = min(lb, i + max_distance)
        current = [cap] * (lb + 1)
        current[0] = i if i < cap else cap
        row_min = current[0]
        for j in range(lo, hi + 1):
            value = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != b[j - 1]),
            )
            if value > cap:
                value = cap
            current[j] = value
            if value < row_min:
                row_min = value
        if row_min >= cap:
            return cap
        previous = current
    return previous[lb]


def _full_distance(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, 1):
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))``."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


# =============================================================================
# Search
# =============================================================================


class _Search:
    """State for one find_best_match call."""

    def __init__(self, content: str, target: str, min_similarity: float, hint_line: int | None):
        self.content = content
        self.target = target
        self.min_similarity = min_similarity
        self.hint_index = hint_line - 1 if hint_line is not None else None
        self.lines = content.split("\n")
        self.offsets: list[int] = []
        pos = 0
        for line in self.lines:
            self.offsets.append(pos)
            pos += len(line) + 1
        self.target_lines = target.split("\n")
        self.evaluated = 0
        self.cells = 0
        self.anchor_tokens = tuple(set(_ANCHOR_TOKEN.findall(target)))
        self.seen: set[tuple[int, int]] = set()
        # (distance, hint distance, start) -> lower is better
        self.best: tuple[tuple[int, int, int], FuzzyMatch] | None = None
        self.searchable = self._searchable_line_ranges()

    def _searchable_line_ranges(self) -> list[range]:
        if len(self.content) <= MAX_CONTENT_SIZE:
            return [range(len(self.lines))]
        half = MAX_CONTENT_SIZE // 2
        head_end = bisect.bisect_right(self.offsets, half)
        tail_start = bisect.bisect_left(self.offsets, len(self.content) - half)
        logger.debug(
            "Large content, restricting fuzzy search to head/tail",
            extra={"content_len": len(self.content), "head_lines": head_end},
        )
        if tail_start <= head_end:
            return [range(len(self.lines))]
        return [range(0, head_end), range(tail_start, len(self.lines))]

    def _in_scope(self, index: int) -> bool:
        return any(index in r for r in self.searchable)

    @property
    def exhausted(self) -> bool:
        return self.evaluated >= MAX_CANDIDATES or self.cells >= MAX_DP_CELLS

    def _distance(self, candidate: str, allowed: int) -> int:
        """Bounded distance to the target, charged against the search budget."""
        self.evaluated += 1
        self.cells += max(len(candidate), len(self.target)) * (2 * allowed + 1)
        return levenshtein(candidate, self.target, max_distance=allowed)

    def _shares_anchor(self, start: int, end: int) -> bool:
        if not self.anchor_tokens:
            return True
        text = self.content[start:end]
        return any(token in text for token in self.anchor_tokens)

    def _hint_distance(self, line_index: int) -> int:
        return abs(line_index - self.hint_index) if self.hint_index is not None else 0

    def _region_span(self, first: int, last: int) -> tuple[int, int]:
        """Character span of lines first..last, trimmed to the target's indentation."""
        start = self.offsets[first]
        end = self.offsets[last] + len(self.lines[last])
        first_line = self.lines[first]
        lead = len(first_line) - len(first_line.lstrip())
        target_lead = len(self.target_lines[0]) - len(self.target_lines[0].lstrip())
        if lead > target_lead:
            start += lead - target_lead
        last_line = self.lines[last]
        trail = len(last_line) - len(last_line.rstrip())
        target_trail = len(self.target_lines[-1]) - len(self.target_lines[-1].rstrip())
        if trail > target_trail and end - (trail - target_trail) > start:
            end -= trail - target_trail
        return start, end

    def score(self, first: int, last: int, strategy: Literal["anchor", "line_window"]) -> None:
        if self.exhausted or (first, last) in self.seen:
            return
        self.seen.add((first, last))
        start, end = self._region_span(first, last)
        if len(self.target_lines) == 1 and end - start > len(self.target) * 1.2:
            if not self._shares_anchor(start, end):
                return
            refined = self._refine_within_line(start, end)
            if refined is None:
                return
            start, end, distance = refined
            candidate = self.content[start:end]
            longest = max(len(candidate), len(self.target))
        else:
            candidate = self.content[start:end]
            longest = max(len(candidate), len(self.target))
            allowed = int((1.0 - self.min_similarity) * longest)
            if abs(len(candidate) - len(self.target)) > allowed:
                return  # cannot reach the threshold, no need to score
            distance = self._distance(candidate, allowed)
            if distance > allowed:
                return
        sim = 1.0 - distance / longest if longest else 1.0
        if sim < self.min_similarity:
            return
        key = (distance, self._hint_distance(first), start)
        if self.best is None or key < self.best[0]:
            self.best = (
                key,
                FuzzyMatch(
                    start=start,
                    end=end,
                    matched_text=candidate,
                    similarity=sim,
                    start_line=first + 1,
                    end_line=last + 1,
                    strategy=strategy,
                    distance=distance,
                ),
            )

    def _refine_within_line(self, start: int, end: int) -> tuple[int, int, int] | None:
        """Slide a target-sized window along a single line, keep the closest.

        Each window position costs one unit of the search budget. Returns
        (start, end, distance) of the best window within the threshold.
        """
        width = len(self.target)
        bound = int((1.0 - self.min_similarity) * width)
        best: tuple[int, int] | None = None
        for pos in range(start, max(start, end - width) + 1):
            if self.exhausted:
                break
            dist = self._distance(self.content[pos:pos + width], bound)
            if dist <= bound and (best is None or dist < best[1]):
                best = (pos, dist)
                if dist == 0:
                    break
                bound = dist - 1
        if best is None:
            return None
        return best[0], min(end, best[0] + width), best[1]

    # -------------------------------------------------------------------------

    def anchor_candidates(self, needle: str) -> list[int]:
        if not needle:
            return []
        found = []
        for r in self.searchable:
            for i in r:
                line = self.lines[i].strip()
                if line == needle or needle in line:
                    found.append(i)
        if self.hint_index is not None:
            found.sort(key=lambda i: (abs(i - self.hint_index), i))
        return found[:MAX_ANCHORS]

    def run_anchor_strategy(self) -> None:
        first_needle = self.target_lines[0].strip()
        last_needle = self.target_lines[-1].strip()
        starts = self.anchor_candidates(first_needle)
        if not starts:
            return
        span = len(self.target_lines) - 1
        ends = starts if len(self.target_lines) == 1 else self.anchor_candidates(last_needle)
        for s in starts:
            for e in ends:
                if self.exhausted:
                    return
                if e < s or e - s > span + CONTEXT_WINDOW:
                    continue
                self.score(s, e, "anchor")
            # The last line may itself be edited: also try the natural span
            natural_end = min(s + span, len(self.lines) - 1)
            self.score(s, natural_end, "anchor")

    def run_line_window_strategy(self) -> None:
        span = len(self.target_lines)
        if self.hint_index is not None:
            lo = max(0, self.hint_index - CONTEXT_WINDOW)
            hi = min(len(self.lines), self.hint_index + CONTEXT_WINDOW + 1)
            starts = sorted(range(lo, hi), key=lambda i: (abs(i - self.hint_index), i))
        else:
            starts = [i for r in self.searchable for i in r]
        for s in starts:
            if not self._in_scope(s):
                continue
            for size in (span, span - 1, span + 1):
                if self.exhausted:
                    return
                if size < 1:
                    continue
                e = s + size - 1
                if e >= len(self.lines):
                    continue
                self.score(s, e, "line_window")


_ANCHOR_TOKEN = re.compile(r"\w{4,}")
"""Words a long line must share with a single-line target before sliding over it."""


def _crlf_positions(content: str) -> list[int]:
    """Normalized offsets at which a '\\r' was removed."""
    positions = []
    removed = 0
    index = content.find("\r\n")
    while index >= 0:
        positions.append(index - removed)
        removed += 1
        index = content.find("\r\n", index + 2)
    return positions


def find_best_match(
    content: str,
    old: str,
    *,
    hint_line: int | None = None,
    min_similarity: float | None = None,
) -> FuzzyMatch | None:
    """Locate ``old`` in ``content``, tolerating small differences.

    Args:
        content: Text to search.
        old: Target text. Must not be empty.
        hint_line: Optional 1-based line where the target is expected.
            Relaxes the default threshold and biases ties toward the hint.
        min_similarity: Override the acceptance threshold.

    Returns:
        The best match at or above the threshold, or None. None means "no
        safe edit location"; callers must fail rather than guess.

    Raises:
        ValueError: If ``old`` is empty.
    """
    if not old:
        raise ValueError("old string must not be empty")
    if min_similarity is None:
        min_similarity = HINTED_MIN_SIMILARITY if hint_line is not None else DEFAULT_MIN_SIMILARITY

    crlf = _crlf_positions(content)
    normalized = content.replace("\r\n", "\n") if crlf else content
    target = old.replace("\r\n", "\n")

    def to_original(offset: int) -> int:
        return offset + bisect.bisect_left(crlf, offset) if crlf else offset

    exact = _exact_match(normalized, target, hint_line)
    if exact is not None:
        start, end = to_original(exact[0]), to_original(exact[1])
        return FuzzyMatch(
            start=start,
            end=end,
            matched_text=content[start:end],
            similarity=1.0,
            start_line=normalized.count("\n", 0, exact[0]) + 1,
            end_line=normalized.count("\n", 0, exact[1]) + 1,
            strategy="exact",
        )

    search = _Search(normalized, target, min_similarity, hint_line)
    search.run_anchor_strategy()
    if search.best is None:
        search.run_line_window_strategy()

    logger.debug(
        "Fuzzy search finished",
        extra={"candidates": search.evaluated, "found": search.best is not None},
    )
    if search.best is None:
        return None
    match = search.best[1]
    if not crlf:
        return match
    start, end = to_original(match.start), to_original(match.end)
    return FuzzyMatch(
        start=start,
        end=end,
        matched_text=content[start:end],
        similarity=match.similarity,
        start_line=match.start_line,
        end_line=match.end_line,
        strategy=match.strategy,
        distance=match.distance,
    )


def _exact_match(content: str, target: str, hint_line: int | None) -> tuple[int, int] | None:
    index = content.find(target)
    if index < 0:
        return None
    if hint_line is None:
        return index, index + len(target)
    best, best_gap = index, None
    line, counted_to = 1, 0
    count = 0
    while index >= 0 and count < MAX_CANDIDATES:
        line += content.count("\n", counted_to, index)
        counted_to = index
        gap = abs(line - hint_line)
        if best_gap is None:
            best_gap = gap
        if gap < best_gap:
            best, best_gap = index, gap
        index = content.find(target, index + 1)
        count += 1
    return best, best + len(target)

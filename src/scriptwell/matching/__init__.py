"""Approximate text location for edits."""

from scriptwell.matching.fuzzy import FuzzyMatch, find_best_match, levenshtein, similarity

__all__ = ["FuzzyMatch", "find_best_match", "levenshtein", "similarity"]

# sentinelmind/services/edit_distance.py

from typing import List


class EditDistanceMatcher:
    """
    Levenshtein edit distance and normalized similarity.

    Case handling is the caller's decision: with case_sensitive=False both
    strings are case-folded before comparison, otherwise they are compared
    exactly as given ("paypaI" and "paypal" differ by one substitution).
    """

    def __init__(self, case_sensitive: bool = True):
        self.case_sensitive = case_sensitive

    def _prepare(self, s: str) -> str:
        if s is None:
            return ""
        return s if self.case_sensitive else s.casefold()

    def distance(self, a: str, b: str) -> int:
        """Minimum number of single-character insertions, deletions or substitutions."""
        a = self._prepare(a)
        b = self._prepare(b)

        # (len(b)+1) x (len(a)+1) table, borders hold the distance from ""
        matrix: List[List[int]] = [[0] * (len(a) + 1) for _ in range(len(b) + 1)]
        for i in range(len(a) + 1):
            matrix[0][i] = i
        for j in range(len(b) + 1):
            matrix[j][0] = j

        for j in range(1, len(b) + 1):
            for i in range(1, len(a) + 1):
                cost = 0 if a[i - 1] == b[j - 1] else 1
                matrix[j][i] = min(
                    matrix[j][i - 1] + 1,         # insertion
                    matrix[j - 1][i] + 1,         # deletion
                    matrix[j - 1][i - 1] + cost,  # substitution
                )

        return matrix[len(b)][len(a)]

    def similarity(self, a: str, b: str) -> float:
        """(max_len - distance) / max_len, 1.0 for two empty strings."""
        a = self._prepare(a)
        b = self._prepare(b)

        longest = max(len(a), len(b))
        if longest == 0:
            return 1.0

        return (longest - self.distance(a, b)) / longest


_default_matcher = EditDistanceMatcher()


def levenshtein_distance(a: str, b: str) -> int:
    return _default_matcher.distance(a, b)


def similarity(a: str, b: str) -> float:
    return _default_matcher.similarity(a, b)

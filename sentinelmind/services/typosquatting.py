# sentinelmind/services/typosquatting.py

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .edit_distance import EditDistanceMatcher

logger = logging.getLogger(__name__)

DEFAULT_LOW_BOUND = 0.7
DEFAULT_HIGH_BOUND = 1.0


@dataclass(frozen=True)
class TyposquatMatch:
    """A legitimate domain the candidate resembles, with its similarity score"""
    reference_domain: str
    score: float

    def to_dict(self):
        return {"reference_domain": self.reference_domain, "score": round(self.score, 4)}


class TyposquattingDetector:
    """
    Flags candidates that are close to, but not exactly, a legitimate domain.

    A reference is reported when low_bound <= similarity < high_bound. The
    exclusive upper bound keeps the legitimate domain itself (score 1.0) out
    of the results while single-character substitutions such as paypaI.com
    land inside the window.

    normalize_case: when True, candidate and references are case-folded
    before comparison. Off by default, so nothing is lower-cased implicitly.
    """

    def __init__(self, matcher: Optional[EditDistanceMatcher] = None,
                 low_bound: float = DEFAULT_LOW_BOUND,
                 high_bound: float = DEFAULT_HIGH_BOUND,
                 normalize_case: bool = False):
        self._check_bounds(low_bound, high_bound)
        self.matcher = matcher or EditDistanceMatcher(case_sensitive=not normalize_case)
        if normalize_case and self.matcher.case_sensitive:
            self.matcher = EditDistanceMatcher(case_sensitive=False)
        self.low_bound = low_bound
        self.high_bound = high_bound
        self.normalize_case = normalize_case

    @staticmethod
    def _check_bounds(low_bound: float, high_bound: float):
        if not (0.0 <= low_bound <= 1.0 and 0.0 <= high_bound <= 1.0):
            raise ValueError(f"Similarity bounds must lie in [0, 1], got {low_bound}..{high_bound}")
        if low_bound > high_bound:
            raise ValueError(f"low_bound {low_bound} is greater than high_bound {high_bound}")

    def find_suspicious_matches(self,
                                candidate: str,
                                reference_domains: Iterable[str],
                                low_bound: Optional[float] = None,
                                high_bound: Optional[float] = None) -> List[TyposquatMatch]:
        low = self.low_bound if low_bound is None else low_bound
        high = self.high_bound if high_bound is None else high_bound
        self._check_bounds(low, high)

        if not candidate:
            return []

        matches = []
        for reference in reference_domains:
            if not reference:
                continue
            score = self.matcher.similarity(candidate, reference)
            if low <= score < high:
                matches.append(TyposquatMatch(reference_domain=reference, score=score))

        # sorted() is stable, equal scores keep reference order
        matches = sorted(matches, key=lambda m: m.score, reverse=True)

        if matches:
            logger.debug(f"Typosquat candidate {candidate!r} resembles "
                         f"{[m.reference_domain for m in matches]}")
        return matches


def find_suspicious_matches(candidate: str,
                            reference_domains: Iterable[str],
                            low_bound: float = DEFAULT_LOW_BOUND,
                            high_bound: float = DEFAULT_HIGH_BOUND,
                            normalize_case: bool = False) -> List[TyposquatMatch]:
    detector = TyposquattingDetector(low_bound=low_bound, high_bound=high_bound,
                                     normalize_case=normalize_case)
    return detector.find_suspicious_matches(candidate, reference_domains)

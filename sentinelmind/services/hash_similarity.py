# sentinelmind/services/hash_similarity.py

from .errors import LengthMismatch

_BINARY = frozenset('01')


def _validate(sig_a: str, sig_b: str):
    if len(sig_a) != len(sig_b):
        raise LengthMismatch(len(sig_a), len(sig_b))
    if not sig_a:
        raise ValueError("Cannot compare empty signatures")
    if not (set(sig_a) <= _BINARY and set(sig_b) <= _BINARY):
        raise ValueError("Signatures must contain only '0' and '1'")


def hamming_distance(sig_a: str, sig_b: str) -> int:
    """Number of positions at which the two signatures differ."""
    _validate(sig_a, sig_b)
    return sum(1 for a, b in zip(sig_a, sig_b) if a != b)


class HashSimilarityComparer:
    """Normalized Hamming similarity between equal-length binary signatures."""

    def similarity(self, sig_a: str, sig_b: str) -> float:
        _validate(sig_a, sig_b)
        matches = sum(1 for a, b in zip(sig_a, sig_b) if a == b)
        return matches / len(sig_a)

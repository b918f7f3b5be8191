"""
Template matching by fingerprint.

A stored definition matches a fresh upload when its gridHash is identical and
the two share at least one label (score 1.0), or when the label sets overlap
(Jaccard) at or above a threshold. gridHash ignores label text, so an equal
hash alone does not tell two one-label forms apart.
"""

from typing import Iterable, List, Set, Tuple

from shared.models.mirror_template import Fingerprint, TemplateMatch


def _label_keys(fingerprint: Fingerprint) -> Set[str]:
    return {label.strip().lower() for label in fingerprint.label_set if label.strip()}


def label_overlap(a: Fingerprint, b: Fingerprint) -> float:
    left, right = _label_keys(a), _label_keys(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def find_matches(
    fingerprint: Fingerprint,
    candidates: Iterable[Tuple[str, str, Fingerprint]],
    threshold: float = 0.8,
) -> List[TemplateMatch]:
    """Best first; exact grid matches rank above label-overlap matches."""
    matches: List[TemplateMatch] = []
    for definition_id, client_key, candidate in candidates:
        score = label_overlap(fingerprint, candidate)
        if candidate.grid_hash == fingerprint.grid_hash and score > 0:
            matches.append(TemplateMatch(id=definition_id, client_key=client_key, score=1.0, exact=True))
        elif score >= threshold:
            matches.append(TemplateMatch(id=definition_id, client_key=client_key, score=round(score, 4)))

    matches.sort(key=lambda m: (not m.exact, -m.score, m.id))
    return matches

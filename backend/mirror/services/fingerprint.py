"""
Layout fingerprints (template identity).

The fingerprint is designed to be stable across repeated uploads of the same
template, including filled-in copies. It is built from structural labels
only: labels ending in a colon, bold labels, and the first label of each row.
Colon-less labels further along a row can turn into values once the form is
filled in, so they never enter the fingerprint.
- gridHash covers structural label positions and the merge pattern, never
  text and never value cells;
- labelSet is the case-insensitive set of structural label strings;
- anchors are the few bold section titles that best orient a reader.
"""

import hashlib
from collections import Counter
from typing import List, Optional

from shared.config.settings import LayoutSettings
from shared.models.mirror_template import Anchor, Fingerprint, LearnedCell, LearnedLayout

from mirror.services.layout_learner import clean_label, is_explicit_label

GRID_HASH_VERSION = "v1"


def structural_labels(layout: LearnedLayout) -> List[LearnedCell]:
    """Label cells whose label status does not depend on what is filled in."""
    first_in_row = {}
    for cell in layout.label_cells:
        first_in_row.setdefault(cell.row, cell.col)
    return [
        c
        for c in layout.label_cells
        if c.is_bold or is_explicit_label(c.text) or first_in_row[c.row] == c.col
    ]


def _anchor_candidates(labels: List[LearnedCell]) -> List[LearnedCell]:
    bold = [c for c in labels if c.is_bold]
    if bold:
        return bold
    # No styling: fall back to labels that are the only label in their row
    per_row = Counter(c.row for c in labels)
    return [c for c in labels if per_row[c.row] == 1]


def compute_anchors(layout: LearnedLayout, max_anchors: int = 12) -> List[Anchor]:
    anchors: List[Anchor] = []
    seen = set()
    for cell in sorted(_anchor_candidates(structural_labels(layout)), key=lambda c: (c.row, c.col)):
        text = clean_label(cell.text)
        norm = text.lower()
        if not norm or norm in seen:
            continue
        seen.add(norm)
        anchors.append(Anchor(text=text, bbox=cell.bbox))
        if len(anchors) >= max_anchors:
            break
    return anchors


def compute_grid_hash(layout: LearnedLayout) -> str:
    h = hashlib.sha256()
    h.update(f"mirror_grid:{GRID_HASH_VERSION}\0".encode("utf-8"))
    for cell in sorted(structural_labels(layout), key=lambda c: (c.row, c.col)):
        h.update(f"L{cell.row},{cell.col},{cell.merge_right},{cell.merge_bottom};".encode("utf-8"))
    h.update(b"\x1e")
    for left, top, right, bottom in sorted(layout.merged_cells, key=lambda m: (m[1], m[0], m[3], m[2])):
        h.update(f"M{top},{left},{bottom},{right};".encode("utf-8"))
    return f"{GRID_HASH_VERSION}:{h.hexdigest()}"


def compute_label_set(layout: LearnedLayout, max_labels: int = 40) -> List[str]:
    by_norm = {}
    for cell in structural_labels(layout):
        label = clean_label(cell.text)
        if label:
            by_norm.setdefault(label.lower(), label)
    return [by_norm[k] for k in sorted(by_norm)][:max_labels]


def compute_fingerprint(layout: LearnedLayout, settings: Optional[LayoutSettings] = None) -> Fingerprint:
    """Pure and deterministic: the same layout always yields the same fingerprint."""
    opts = settings or LayoutSettings()
    return Fingerprint(
        page_size=layout.page_size,
        anchors=compute_anchors(layout, opts.max_anchors),
        grid_hash=compute_grid_hash(layout),
        label_set=compute_label_set(layout, opts.max_label_set),
    )

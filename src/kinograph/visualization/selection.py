"""Compile visible graph nodes into viewer selection expressions.

Two grammars are emitted:

* atom mode     ``@237 or @238``            (atom serial numbers)
* residue mode  ``:A and resi 861 or ...``  (chain + residue number)

Fragments are deduplicated with first-seen order preserved. An empty result
is returned as None, which the synchronizer treats as "no highlight".
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from kinograph.analysis.graph import Link, Node
from kinograph.analysis.labels import parse_label
from kinograph.utils.config import INTERACTION_TYPES

ATOM = "atom"
RESIDUE = "residue"
MODES = (ATOM, RESIDUE)

AtomPair = Tuple[str, str]


def atom_token(node: Node) -> Optional[str]:
    """``@serial`` for a node, from its label first, then an explicit id."""
    if node.index_id:
        # a label that fell back to the index is no serial either
        sources = () if node.label == node.id else (node.label,)
    else:
        sources = (node.label, node.id)
    for text in sources:
        serial = parse_label(text).serial
        if serial:
            return f"@{serial}"
    return None


def residue_token(node: Node) -> Optional[str]:
    parsed = parse_label(node.label)
    chain = parsed.chain or node.role or None
    if not chain or not parsed.resno:
        return None
    return f":{chain} and resi {parsed.resno}"


def _join(tokens: Iterable[Optional[str]], limit: Optional[int] = None) -> Optional[str]:
    seen: Dict[str, None] = {}
    for tok in tokens:
        if not tok or tok in seen:
            continue
        if limit is not None and len(seen) >= limit:
            logger.debug(f"selection: capped at {limit} fragments")
            break
        seen[tok] = None
    return " or ".join(seen) if seen else None


def compile_selection(nodes: Sequence[Node], mode: str = ATOM, max_atoms: Optional[int] = None) -> Optional[str]:
    """Selection expression for ``nodes`` in the given mode (None when empty).

    Nodes whose label yields no usable serial (atom mode) or chain/residue
    (residue mode) are skipped. ``max_atoms`` caps the number of atom
    fragments; residue mode is not capped.
    """
    if mode == RESIDUE:
        return _join(residue_token(n) for n in nodes)
    if mode != ATOM:
        raise ValueError(f"unknown selection mode {mode!r}; expected one of {MODES}")
    return _join((atom_token(n) for n in nodes), max_atoms)


def compile_residue_selection_from_labels(labels: Iterable[str]) -> Optional[str]:
    """Residue expression straight from label strings (e.g. table rows)."""
    tokens = []
    for label in labels:
        parsed = parse_label(label)
        if parsed.chain and parsed.resno:
            tokens.append(f":{parsed.chain} and resi {parsed.resno}")
    return _join(tokens)


def split_selection(expression: Optional[str]) -> List[str]:
    """Inverse of the ``" or "`` join."""
    if not expression:
        return []
    return [part.strip() for part in expression.split(" or ") if part.strip()]


def _type_order(types: Iterable[str]) -> List[str]:
    known = [t for t in INTERACTION_TYPES if t in types]
    return known + sorted(t for t in types if t not in INTERACTION_TYPES)


def atom_pairs_by_type(nodes: Sequence[Node], links: Sequence[Link],
                       active_types: Optional[Iterable[str]] = None,
                       max_pairs: int = 2500) -> Dict[str, List[AtomPair]]:
    """Per-type ``(@a, @b)`` serial pairs for distance representations.

    Links without a type or whose endpoints lack a serial are skipped. The
    total number of pairs over all types is capped at ``max_pairs``.
    """
    by_id = {n.id: n for n in nodes}
    allowed = set(active_types) if active_types is not None else None
    grouped: Dict[str, List[AtomPair]] = {}
    seen = set()
    for link in links:
        if not link.type or (allowed is not None and link.type not in allowed):
            continue
        a, b = by_id.get(link.source), by_id.get(link.target)
        if a is None or b is None:
            continue
        ta, tb = atom_token(a), atom_token(b)
        if not ta or not tb or (link.type, ta, tb) in seen:
            continue
        seen.add((link.type, ta, tb))
        grouped.setdefault(link.type, []).append((ta, tb))

    out: Dict[str, List[AtomPair]] = {}
    budget = max_pairs
    for t in _type_order(grouped):
        if budget <= 0:
            logger.debug(f"selection: distance pairs capped at {max_pairs}")
            break
        pairs = grouped[t][:budget]
        out[t] = pairs
        budget -= len(pairs)
    return out

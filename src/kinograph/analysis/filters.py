"""Interaction filter: type activation, chain-pair tiers and proximity.

A link passes when its type is active and, if a tier restriction is configured
for that type, its tier is one of the active tiers. Independently, when the
``proximal`` class is active with a distance threshold, any link whose finite
distance is within the threshold passes as well (the two conditions are OR'd).

Nothing active means nothing shown: the result of an all-off state is the empty
graph, never the full one.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
import math
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from kinograph.analysis.graph import Graph, Link, Node
from kinograph.analysis.keys import PROXIMAL, TIER_ORDER, Tier, derive_tier, resolve_key
from kinograph.utils.config import INTERACTION_TYPES


@dataclass
class FilterState:
    """User-driven filter selection for one graph view.

    ``tiers`` maps a type to its active tier set; a type without an entry has
    no tier restriction. Resets only happen through ``select_all`` and
    ``clear_all``.
    """

    types: Dict[str, bool] = field(default_factory=lambda: {t: False for t in INTERACTION_TYPES})
    tiers: Dict[str, Set[Tier]] = field(default_factory=dict)
    proximity_threshold: Optional[float] = None
    show_isolated: bool = False

    @property
    def active_types(self) -> FrozenSet[str]:
        return frozenset(t for t, on in self.types.items() if on)

    def is_active(self, type_: str) -> bool:
        return bool(self.types.get(resolve_key(type_), False))

    def set_type(self, type_: str, active: bool) -> None:
        self.types[resolve_key(type_)] = bool(active)

    def toggle_type(self, type_: str) -> bool:
        key = resolve_key(type_)
        self.types[key] = not self.types.get(key, False)
        return self.types[key]

    def restrict_tiers(self, type_: str, tiers: Iterable[Tier]) -> None:
        self.tiers[resolve_key(type_)] = set(tiers)

    def toggle_tier(self, type_: str, tier: Tier) -> bool:
        """Flip one tier checkbox of a type; the type becomes tier-restricted.

        Activates the type when its first tier is switched on and deactivates
        it when its last tier is switched off, mirroring the per-type tiles.
        """
        key = resolve_key(type_)
        active = self.tiers.setdefault(key, set())
        if tier in active:
            active.discard(tier)
        else:
            active.add(tier)
        self.types[key] = bool(active)
        return tier in active

    def set_proximity(self, enabled: bool, threshold: Optional[float] = None) -> None:
        if threshold is not None:
            if not math.isfinite(threshold) or threshold <= 0:
                raise ValueError(f"proximity threshold must be a positive number, got {threshold!r}")
            self.proximity_threshold = float(threshold)
        self.types[PROXIMAL] = bool(enabled)

    def select_all(self, available: Optional[Mapping[str, int]] = None) -> None:
        """Activate every type; with ``available`` counts, zero-count types stay off."""
        for t in list(self.types) or list(INTERACTION_TYPES):
            self.types[t] = True if available is None else available.get(t, 0) > 0
        self.tiers.clear()

    def clear_all(self) -> None:
        for t in self.types:
            self.types[t] = False
        self.tiers.clear()

    def signature_fields(self) -> Dict[str, object]:
        """Deterministic, JSON-friendly view of the state (for sync signatures)."""
        return {
            "types": sorted(self.active_types),
            "tiers": {t: sorted(x.value for x in s) for t, s in sorted(self.tiers.items())},
            "proximity": self.proximity_threshold if self.is_active(PROXIMAL) else None,
            "show_isolated": self.show_isolated,
        }


@dataclass(frozen=True)
class FilterResult:
    nodes: Tuple[Node, ...]
    links: Tuple[Link, ...]
    present_pairs_by_type: Dict[str, FrozenSet[Tier]]
    type_counts: Dict[str, int]
    tier_counts: Dict[str, Dict[Tier, int]]
    proximity_available: bool

    @property
    def graph(self) -> Graph:
        return Graph(self.nodes, self.links)

    @property
    def is_empty(self) -> bool:
        return not self.links and not self.nodes

    def tier_selectable(self, type_: str, tier: Tier) -> bool:
        """Whether toggling ``tier`` for ``type_`` could change the view at all."""
        return tier in self.present_pairs_by_type.get(resolve_key(type_), frozenset())


def with_derived_tiers(graph: Graph, ligand_role: str = "A") -> Tuple[Link, ...]:
    """Links of ``graph`` with missing tiers filled from endpoint roles (copies)."""
    out: List[Link] = []
    for link in graph.links:
        if link.pair is None:
            pair = derive_tier(graph.role_of(link.source), graph.role_of(link.target), ligand_role)
            if pair is not None:
                link = link.with_pair(pair)
        out.append(link)
    return tuple(out)


def present_pairs_by_type(links: Iterable[Link]) -> Dict[str, FrozenSet[Tier]]:
    found: Dict[str, Set[Tier]] = {}
    for link in links:
        if link.type and link.pair is not None:
            found.setdefault(link.type, set()).add(link.pair)
    return {t: frozenset(s) for t, s in found.items()}


def occurrence_counts(links: Iterable[Link]) -> Tuple[Dict[str, int], Dict[str, Dict[Tier, int]]]:
    types: Counter = Counter()
    tiers: Dict[str, Counter] = {}
    for link in links:
        if not link.type:
            continue
        types[link.type] += 1
        if link.pair is not None:
            tiers.setdefault(link.type, Counter())[link.pair] += 1
    type_counts = {t: types.get(t, 0) for t in INTERACTION_TYPES}
    for t, n in types.items():
        type_counts.setdefault(t, n)
    tier_counts = {t: {tier: c.get(tier, 0) for tier in TIER_ORDER} for t, c in tiers.items()}
    return type_counts, tier_counts


def _has_distance(link: Link) -> bool:
    return link.distance is not None and math.isfinite(link.distance)


def _type_pass(link: Link, state: FilterState, active: FrozenSet[str]) -> bool:
    # proximal links pass only through the distance threshold
    if not link.type or link.type == PROXIMAL or link.type not in active:
        return False
    allowed = state.tiers.get(link.type)
    if allowed is None:
        return True
    return link.pair is not None and link.pair in allowed


def filter_graph(graph: Graph, state: FilterState, ligand_role: str = "A") -> FilterResult:
    """Compute the visible sub-graph plus occurrence statistics of ``graph``."""
    links = with_derived_tiers(graph, ligand_role)
    present = present_pairs_by_type(links)
    type_counts, tier_counts = occurrence_counts(links)
    proximity_available = any(_has_distance(l) for l in links)

    active = state.active_types
    if not active:
        return FilterResult((), (), present, type_counts, tier_counts, proximity_available)

    threshold = state.proximity_threshold
    use_proximity = PROXIMAL in active and threshold is not None and proximity_available

    passing: List[Link] = []
    for link in links:
        if _type_pass(link, state, active):
            passing.append(link)
        elif use_proximity and _has_distance(link) and link.distance <= threshold:
            passing.append(link)

    if state.show_isolated:
        nodes = graph.nodes
    else:
        touched = set()
        for link in passing:
            touched.add(link.source)
            touched.add(link.target)
        nodes = tuple(n for n in graph.nodes if n.id in touched)

    return FilterResult(tuple(nodes), tuple(passing), present, type_counts, tier_counts, proximity_available)

"""Canonical interaction graph structures.

Graph snapshots are rebuilt wholesale on every data fetch and treated as
read-only afterwards: the filter, layout and selection stages derive new
objects instead of editing these.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from kinograph.analysis.keys import Tier


@dataclass(frozen=True, slots=True)
class Node:
    id: str
    label: str
    role: str
    # id defaulted to the list index; never an atom serial
    index_id: bool = False


@dataclass(frozen=True, slots=True)
class Link:
    source: str
    target: str
    type: Optional[str] = None
    distance: Optional[float] = None
    angle: Optional[float] = None
    pair: Optional[Tier] = None

    def with_pair(self, pair: Optional[Tier]) -> "Link":
        return replace(self, pair=pair)

    @property
    def endpoints(self) -> Tuple[str, str]:
        """Unordered endpoint key shared by parallel links."""
        return (self.source, self.target) if self.source <= self.target else (self.target, self.source)

    def canonical_key(self) -> tuple:
        return (self.source, self.target, self.type, self.pair, self.distance, self.angle)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"source": self.source, "target": self.target}
        if self.type is not None:
            out["type"] = self.type
        if self.distance is not None:
            out["distance"] = self.distance
        if self.angle is not None:
            out["angle"] = self.angle
        if self.pair is not None:
            out["pair"] = self.pair.value
        return out


@dataclass(frozen=True)
class Graph:
    nodes: Tuple[Node, ...] = ()
    links: Tuple[Link, ...] = ()
    _index: Dict[str, Node] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "links", tuple(self.links))
        object.__setattr__(self, "_index", {n.id: n for n in self.nodes})

    @classmethod
    def empty(cls) -> "Graph":
        return cls((), ())

    def node(self, node_id: str) -> Optional[Node]:
        return self._index.get(node_id)

    def role_of(self, node_id: str) -> Optional[str]:
        n = self._index.get(node_id)
        return n.role if n is not None and n.role else None

    def label_of(self, node_id: str) -> str:
        n = self._index.get(node_id)
        return n.label if n is not None else node_id

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.links

    def summary(self) -> Dict[str, int]:
        return {"nodes": len(self.nodes), "links": len(self.links)}

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "nodes": [{"id": n.id, "label": n.label, "role": n.role} for n in self.nodes],
            "links": [l.to_dict() for l in self.links],
        }

"""Force-directed layout for the interaction graph.

A small numpy port of the d3-force model the dashboard graph uses: link
springs, many-body repulsion, x/y centering plus mean-centering and
collision, integrated with velocity decay under a cooling ``alpha``.

Two ways to drive it:

* static: ``run()`` executes a fixed tick budget synchronously and the result
  is read with ``snapshot()``;
* continuous: ``reheat()`` once per data change, then ``tick()`` from a frame
  loop until it returns False; ``release()`` drops the alpha target again.

Node positions persist across ``update()`` calls for ids present in both the
old and the new node set, so filter toggles do not reshuffle the picture.
"""
from __future__ import annotations
from dataclasses import dataclass, field
import math
from typing import Dict, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
from loguru import logger

from kinograph.analysis.graph import Link, Node
from kinograph.utils.config import LayoutConfig

Point = Tuple[float, float]
WARM_ALPHA = 0.28


@dataclass(slots=True)
class EdgePath:
    source: str
    target: str
    type: Optional[str]
    offset: float
    control: Point
    path: str


@dataclass
class FitTransform:
    """Screen transform ``screen = point * scale + (tx, ty)``."""

    scale: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    def apply(self, point: Point) -> Point:
        return (point[0] * self.scale + self.tx, point[1] * self.scale + self.ty)


@dataclass
class LayoutResult:
    positions: Dict[str, Point] = field(default_factory=dict)
    radii: Dict[str, float] = field(default_factory=dict)
    edges: List[EdgePath] = field(default_factory=list)
    degrees: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "positions": {k: [round(x, 3), round(y, 3)] for k, (x, y) in self.positions.items()},
            "radii": {k: round(r, 3) for k, r in self.radii.items()},
            "edges": [
                {"source": e.source, "target": e.target, "type": e.type, "offset": e.offset, "path": e.path}
                for e in self.edges
            ],
        }


def degree_map(node_ids: Sequence[str], links: Sequence[Link]) -> Dict[str, int]:
    """Degree of every node counting parallel links individually."""
    g = nx.MultiGraph()
    g.add_nodes_from(node_ids)
    known = set(node_ids)
    g.add_edges_from((l.source, l.target) for l in links if l.source in known and l.target in known)
    return {n: int(d) for n, d in g.degree()}


def radius_for_degree(degree: int, max_degree: int, min_radius: float, max_radius: float) -> float:
    """Square-root scale from ``[0, max_degree]`` onto ``[min_radius, max_radius]``."""
    if max_degree <= 0:
        return min_radius
    frac = math.sqrt(max(0, degree) / max_degree)
    return min_radius + (max_radius - min_radius) * frac


def edge_paths(links: Sequence[Link], positions: Dict[str, Point], spread: float) -> List[EdgePath]:
    """Curved paths for links, fanning parallel links between the same pair.

    Links sharing an unordered endpoint pair get offsets
    ``spread * (index - (count - 1) / 2)``; the normal is taken in the
    pair's canonical orientation so reversed links still bend to opposite
    sides.
    """
    groups: Dict[Tuple[str, str], int] = {}
    for l in links:
        groups[l.endpoints] = groups.get(l.endpoints, 0) + 1

    seen: Dict[Tuple[str, str], int] = {}
    out: List[EdgePath] = []
    for l in links:
        if l.source not in positions or l.target not in positions:
            continue
        key = l.endpoints
        idx = seen.get(key, 0)
        seen[key] = idx + 1
        count = groups[key]
        offset = spread * (idx - (count - 1) / 2)

        ax, ay = positions[key[0]]
        bx, by = positions[key[1]]
        dx, dy = bx - ax, by - ay
        length = math.hypot(dx, dy) or 1.0
        nx_, ny_ = -dy / length, dx / length

        sx, sy = positions[l.source]
        tx, ty = positions[l.target]
        cx = (sx + tx) / 2 + nx_ * offset
        cy = (sy + ty) / 2 + ny_ * offset
        path = f"M {sx:.2f},{sy:.2f} Q {cx:.2f},{cy:.2f} {tx:.2f},{ty:.2f}"
        out.append(EdgePath(l.source, l.target, l.type, offset, (cx, cy), path))
    return out


class ForceLayout:
    """Stateful force simulation over the currently visible nodes and links."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self._rng = np.random.default_rng(self.config.seed)
        self.ids: List[str] = []
        self._index: Dict[str, int] = {}
        self.pos = np.zeros((0, 2))
        self.vel = np.zeros((0, 2))
        self.fixed = np.full((0, 2), np.nan)
        self.radii = np.zeros(0)
        self.degrees: Dict[str, int] = {}
        self.links: List[Link] = []
        self._src = np.zeros(0, dtype=int)
        self._tgt = np.zeros(0, dtype=int)
        self._dist = np.zeros(0)
        self._bias = np.zeros(0)
        self.alpha = 1.0
        self.alpha_target = 0.0

    @property
    def center(self) -> Point:
        return (self.config.width / 2, self.config.height / 2)

    # ------------------------------------------------------------ data

    def update(self, nodes: Sequence[Node], links: Sequence[Link]) -> None:
        """Replace the node/link set, keeping positions of retained ids."""
        old_index = self._index
        ids: List[str] = []
        for n in nodes:
            if n.id not in ids:
                ids.append(n.id)
        count = len(ids)
        pos = np.zeros((count, 2))
        vel = np.zeros((count, 2))
        fixed = np.full((count, 2), np.nan)
        cx, cy = self.center
        for i, node_id in enumerate(ids):
            j = old_index.get(node_id)
            if j is not None:
                pos[i] = self.pos[j]
                vel[i] = self.vel[j]
                fixed[i] = self.fixed[j]
            else:
                pos[i] = (cx - 50 + self._rng.random() * 100, cy - 30 + self._rng.random() * 60)

        self.ids = ids
        self._index = {node_id: i for i, node_id in enumerate(ids)}
        self.pos, self.vel, self.fixed = pos, vel, fixed

        self.links = [l for l in links if l.source in self._index and l.target in self._index]
        if len(self.links) != len(links):
            logger.debug(f"layout: ignored {len(links) - len(self.links)} links with unknown endpoints")

        self.degrees = degree_map(ids, self.links)
        max_deg = max(self.degrees.values(), default=0)
        cfg = self.config
        self.radii = np.array(
            [radius_for_degree(self.degrees.get(i, 0), max_deg, cfg.min_radius, cfg.max_radius) for i in ids]
        )

        self._src = np.array([self._index[l.source] for l in self.links], dtype=int)
        self._tgt = np.array([self._index[l.target] for l in self.links], dtype=int)
        self._dist = np.array([self._link_distance(l) for l in self.links], dtype=float)
        link_count = np.zeros(count)
        np.add.at(link_count, self._src, 1)
        np.add.at(link_count, self._tgt, 1)
        if self.links:
            self._bias = link_count[self._src] / (link_count[self._src] + link_count[self._tgt])
        else:
            self._bias = np.zeros(0)

    def _link_distance(self, link: Link) -> float:
        scale = self.config.distance_scale
        if scale and link.distance is not None and math.isfinite(link.distance) and link.distance > 0:
            return float(link.distance) * scale
        return float(self.config.link_distance)

    # ------------------------------------------------------------ drag / pin

    def pin(self, node_id: str, x: Optional[float] = None, y: Optional[float] = None) -> None:
        """Fix a node at ``(x, y)`` (default: where it currently is)."""
        i = self._index.get(node_id)
        if i is None:
            return
        self.fixed[i] = (
            self.pos[i, 0] if x is None else float(x),
            self.pos[i, 1] if y is None else float(y),
        )

    def unpin(self, node_id: str) -> None:
        i = self._index.get(node_id)
        if i is not None:
            self.fixed[i] = (np.nan, np.nan)

    def is_pinned(self, node_id: str) -> bool:
        i = self._index.get(node_id)
        return i is not None and not np.isnan(self.fixed[i, 0])

    # ------------------------------------------------------------ simulation

    def reheat(self, alpha: float = WARM_ALPHA, alpha_target: float = 0.05) -> None:
        self.alpha = alpha
        self.alpha_target = alpha_target

    def release(self) -> None:
        self.alpha_target = 0.0

    def tick(self) -> bool:
        """Advance one step; returns False once the simulation has cooled."""
        if not self.ids:
            return False
        cfg = self.config
        self.alpha += (self.alpha_target - self.alpha) * cfg.alpha_decay
        alpha = self.alpha

        self._force_link(alpha)
        self._force_many_body(alpha)
        self._force_position(alpha)
        self._force_collide()
        self._force_center()

        self.vel *= 1.0 - cfg.velocity_decay
        self.pos += self.vel
        pinned = ~np.isnan(self.fixed[:, 0])
        if pinned.any():
            self.pos[pinned] = self.fixed[pinned]
            self.vel[pinned] = 0.0
        return self.alpha >= cfg.alpha_min

    def run(self, ticks: Optional[int] = None, warm: bool = False) -> LayoutResult:
        """Static mode: fixed synchronous tick budget.

        A hot start (alpha 1.0) is used for a fresh layout. ``warm`` restarts
        from the reheat alpha so retained nodes only drift.
        """
        budget = self.config.tick_budget if ticks is None else ticks
        self.alpha = WARM_ALPHA if warm else 1.0
        self.alpha_target = 0.0
        for _ in range(max(0, budget)):
            self.tick()
        return self.snapshot()

    def _jiggle(self, shape) -> np.ndarray:
        return (self._rng.random(shape) - 0.5) * 1e-6

    def _force_link(self, alpha: float) -> None:
        if not self.links:
            return
        s, t = self._src, self._tgt
        d = (self.pos[t] + self.vel[t]) - (self.pos[s] + self.vel[s])
        zero = (d == 0)
        if zero.any():
            d[zero] = self._jiggle(int(zero.sum()))
        length = np.sqrt((d ** 2).sum(axis=1))
        k = (length - self._dist) / length * alpha * self.config.link_strength
        d *= k[:, None]
        np.add.at(self.vel, t, -d * self._bias[:, None])
        np.add.at(self.vel, s, d * (1 - self._bias)[:, None])

    def _force_many_body(self, alpha: float) -> None:
        count = len(self.ids)
        if count < 2:
            return
        diff = self.pos[None, :, :] - self.pos[:, None, :]
        l2 = (diff ** 2).sum(axis=2)
        np.fill_diagonal(l2, np.inf)
        coincident = l2 == 0
        if coincident.any():
            diff[coincident] = self._jiggle((int(coincident.sum()), 2))
            l2 = np.where(coincident, (diff ** 2).sum(axis=2), l2)
        in_range = l2 < self.config.charge_distance_max ** 2
        # distanceMin of 1
        l2 = np.where(l2 < 1.0, np.sqrt(np.maximum(l2, 1e-12)), l2)
        w = np.where(in_range, self.config.charge_strength * alpha / l2, 0.0)
        self.vel += (diff * w[:, :, None]).sum(axis=1)

    def _force_position(self, alpha: float) -> None:
        cx, cy = self.center
        k = self.config.center_strength * alpha
        self.vel[:, 0] += (cx - self.pos[:, 0]) * k
        self.vel[:, 1] += (cy - self.pos[:, 1]) * k

    def _force_collide(self) -> None:
        count = len(self.ids)
        if count < 2:
            return
        r = self.radii + self.config.collide_padding
        nxt = self.pos + self.vel
        i, j = np.triu_indices(count, k=1)
        delta = nxt[i] - nxt[j]
        l2 = (delta ** 2).sum(axis=1)
        reach = r[i] + r[j]
        hit = l2 < reach ** 2
        if not hit.any():
            return
        i, j, delta, l2, reach = i[hit], j[hit], delta[hit], l2[hit], reach[hit]
        zero = l2 == 0
        if zero.any():
            delta[zero] = self._jiggle((int(zero.sum()), 2))
            l2 = (delta ** 2).sum(axis=1)
        length = np.sqrt(l2)
        k = (reach - length) / length * self.config.collide_strength
        delta *= k[:, None]
        ri2, rj2 = r[i] ** 2, r[j] ** 2
        w = rj2 / (ri2 + rj2)
        np.add.at(self.vel, i, delta * w[:, None])
        np.add.at(self.vel, j, -delta * (1 - w)[:, None])

    def _force_center(self) -> None:
        cx, cy = self.center
        shift = np.array([cx, cy]) - self.pos.mean(axis=0)
        self.pos += shift

    # ------------------------------------------------------------ output

    def positions(self) -> Dict[str, Point]:
        return {node_id: (float(self.pos[i, 0]), float(self.pos[i, 1])) for i, node_id in enumerate(self.ids)}

    def snapshot(self) -> LayoutResult:
        positions = self.positions()
        return LayoutResult(
            positions=positions,
            radii={node_id: float(self.radii[i]) for i, node_id in enumerate(self.ids)},
            edges=edge_paths(self.links, positions, self.config.parallel_spread),
            degrees=dict(self.degrees),
        )

    def fit_transform(self, width: Optional[float] = None, height: Optional[float] = None) -> FitTransform:
        """Scale/translate that fits every node (plus padding) into the viewport."""
        w = self.config.width if width is None else width
        h = self.config.height if height is None else height
        if not self.ids:
            return FitTransform()
        r = self.radii
        min_x = float((self.pos[:, 0] - r).min())
        max_x = float((self.pos[:, 0] + r).max())
        min_y = float((self.pos[:, 1] - r).min())
        max_y = float((self.pos[:, 1] + r).max())
        pad = max(20.0, float(r.max()) + 10.0)
        content_w = max(1.0, max_x - min_x + pad * 2)
        content_h = max(1.0, max_y - min_y + pad * 2)
        scale = min(w / content_w, h / content_h) * 0.95
        cx = (min_x + max_x) / 2
        cy = (min_y + max_y) / 2
        return FitTransform(scale, w / 2 - cx * scale, h / 2 - cy * scale)


def layout_graph(nodes: Sequence[Node], links: Sequence[Link],
                 config: Optional[LayoutConfig] = None, ticks: Optional[int] = None) -> LayoutResult:
    """One-shot static layout of a node/link set."""
    engine = ForceLayout(config)
    engine.update(nodes, links)
    return engine.run(ticks)

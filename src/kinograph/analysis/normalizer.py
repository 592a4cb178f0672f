"""Normalization of raw interaction JSON into the canonical graph.

Accepted raw forms:
  * ``{"nodes": [...], "links": <links>}`` payloads
  * a bare link list
  * a bare type -> tier -> tuples dictionary (the viewer JSON feed)

``<links>`` may itself be a flat list of link objects, a dictionary keyed by
tier (``"A-R"``), or a dictionary keyed by interaction type whose values are
keyed by tier. Leaves are link objects or ``[labelA, labelB, distance?, angle?]``
tuples; type and tier missing from a leaf are inherited from the enclosing keys.

Each shape is handled by a small decoder returning either a fragment or None
("not this shape"); decoders are tried in sequence.
"""
from __future__ import annotations
from dataclasses import dataclass
import json
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from kinograph.analysis.graph import Graph, Link, Node
from kinograph.analysis.keys import Tier, derive_tier, is_interaction_type, parse_tier, resolve_key
from kinograph.analysis.labels import label_from_fields, role_from_label

_MAX_KEY_DEPTH = 3

# (metadata key, endpoint key) pairs carrying per-endpoint atom details
_ENDPOINT_META_KEYS = (
    ("sourceMeta", "source"), ("targetMeta", "target"),
    ("atomA", "source"), ("atomB", "target"),
    ("A", "source"), ("B", "target"),
    ("a", "source"), ("b", "target"),
)
_META_ID_KEYS = ("atomId", "index", "serial", "atom_index")


@dataclass(frozen=True)
class _Hints:
    type: Optional[str] = None
    tier: Optional[Tier] = None

    def merge(self, type_: Optional[str], tier: Optional[Tier]) -> "_Hints":
        return _Hints(type_ or self.type, tier or self.tier)


@dataclass
class _RawLink:
    source: str
    target: str
    type: Optional[str]
    pair: Optional[Tier]
    distance: Optional[float]
    angle: Optional[float]


@dataclass
class _Fragment:
    nodes: Optional[List[Node]]
    links: List[_RawLink]
    meta_labels: Dict[str, str]


def _is_obj(x: Any) -> bool:
    return isinstance(x, Mapping)


def _ref(value: Any) -> Optional[str]:
    """Coerce a link endpoint to a string reference (None if impossible)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    if _is_obj(value) and "id" in value:
        return _ref(value["id"])
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        try:
            out = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return out if math.isfinite(out) else None


def _key_hints(key: Any, ligand_role: str) -> Tuple[Optional[str], Optional[Tier]]:
    if not isinstance(key, str):
        return None, None
    type_ = resolve_key(key) if is_interaction_type(key) else None
    tier = parse_tier(key, ligand_role)
    return type_, tier


# ----------------------------------------------------------------- leaf decoders

def _decode_link_object(item: Any, hints: _Hints, ligand_role: str) -> Optional[_RawLink]:
    if not _is_obj(item) or "source" not in item or "target" not in item:
        return None
    source = _ref(item.get("source"))
    target = _ref(item.get("target"))
    if source is None or target is None:
        return None
    raw_type = item.get("type")
    type_ = resolve_key(raw_type) if isinstance(raw_type, str) and raw_type.strip() else hints.type
    pair = parse_tier(item.get("pair"), ligand_role) or hints.tier
    return _RawLink(source, target, type_, pair, _number(item.get("distance")), _number(item.get("angle")))


def _decode_link_tuple(item: Any, hints: _Hints, ligand_role: str) -> Optional[_RawLink]:
    if not isinstance(item, (list, tuple)) or not 2 <= len(item) <= 4:
        return None
    source = _ref(item[0]) if not _is_obj(item[0]) else None
    target = _ref(item[1]) if not _is_obj(item[1]) else None
    if source is None or target is None:
        return None
    distance = _number(item[2]) if len(item) > 2 else None
    angle = _number(item[3]) if len(item) > 3 else None
    return _RawLink(source, target, hints.type, hints.tier, distance, angle)


_LEAF_DECODERS: Sequence[Callable[[Any, _Hints, str], Optional[_RawLink]]] = (
    _decode_link_object,
    _decode_link_tuple,
)


# ------------------------------------------------------------ container decoders

def _decode_link_list(value: Any, hints: _Hints, ligand_role: str, depth: int) -> Optional[List[_RawLink]]:
    if not isinstance(value, (list, tuple)):
        return None
    out: List[_RawLink] = []
    dropped = 0
    for item in value:
        for decode in _LEAF_DECODERS:
            link = decode(item, hints, ligand_role)
            if link is not None:
                out.append(link)
                break
        else:
            dropped += 1
    if dropped:
        logger.debug(f"normalizer: skipped {dropped} malformed link entries (type={hints.type}, tier={hints.tier})")
    return out


def _decode_keyed_links(value: Any, hints: _Hints, ligand_role: str, depth: int) -> Optional[List[_RawLink]]:
    if not _is_obj(value) or depth >= _MAX_KEY_DEPTH:
        return None
    out: List[_RawLink] = []
    for key, inner in value.items():
        type_, tier = _key_hints(key, ligand_role)
        decoded = _decode_links(inner, hints.merge(type_, tier), ligand_role, depth + 1)
        if decoded:
            out.extend(decoded)
    return out


_CONTAINER_DECODERS = (_decode_link_list, _decode_keyed_links)


def _decode_links(value: Any, hints: _Hints, ligand_role: str, depth: int = 0) -> List[_RawLink]:
    for decode in _CONTAINER_DECODERS:
        decoded = decode(value, hints, ligand_role, depth)
        if decoded is not None:
            return decoded
    return []


# --------------------------------------------------------------- node decoding

def _collect_meta_labels(links_raw: Any) -> Dict[str, str]:
    """Labels recovered from per-endpoint metadata carried on link objects."""
    found: Dict[str, str] = {}

    def scan(link: Any) -> None:
        if not _is_obj(link):
            return
        for meta_key, endpoint_key in _ENDPOINT_META_KEYS:
            meta = link.get(meta_key)
            if not _is_obj(meta):
                continue
            ident = _ref(link.get(endpoint_key))
            for k in _META_ID_KEYS:
                if ident is not None:
                    break
                ident = _ref(meta.get(k))
            if ident is None:
                continue
            meta_label = meta.get("label")
            label = meta_label.strip() if isinstance(meta_label, str) and meta_label.strip() else label_from_fields(meta)
            if label:
                found.setdefault(ident, label)

    def walk(value: Any, depth: int) -> None:
        if isinstance(value, (list, tuple)):
            for item in value:
                scan(item)
        elif _is_obj(value) and depth < _MAX_KEY_DEPTH:
            for inner in value.values():
                walk(inner, depth + 1)

    walk(links_raw, 0)
    return found


def _node_role(label: str, raw: Mapping[str, Any]) -> str:
    role = role_from_label(label)
    if not role:
        explicit = raw.get("role")
        if isinstance(explicit, str) and explicit.strip():
            role = explicit.strip()
    return role


def _decode_nodes(nodes_raw: Any, meta_labels: Mapping[str, str]) -> Optional[List[Node]]:
    if isinstance(nodes_raw, (list, tuple)):
        items = list(nodes_raw)
    elif _is_obj(nodes_raw):
        items = list(nodes_raw.values())
    else:
        return None

    nodes: List[Node] = []
    seen = set()
    for i, raw in enumerate(items):
        if not _is_obj(raw):
            continue
        explicit_id = _ref(raw.get("id")) if not _is_obj(raw.get("id")) else None
        node_id = explicit_id if explicit_id is not None else str(i)
        if node_id in seen:
            logger.debug(f"normalizer: duplicate node id {node_id!r} ignored")
            continue
        seen.add(node_id)
        raw_label = raw.get("label")
        if isinstance(raw_label, (str, int, float)) and not isinstance(raw_label, bool) and str(raw_label).strip():
            label = str(raw_label)
        elif explicit_id is not None:
            label = explicit_id
        else:
            label = label_from_fields(raw) or meta_labels.get(node_id) or str(i)
        nodes.append(Node(id=node_id, label=label, role=_node_role(label, raw), index_id=explicit_id is None))
    return nodes


# ------------------------------------------------------------ payload decoders

def _decode_payload(raw: Any, ligand_role: str) -> Optional[_Fragment]:
    if not _is_obj(raw) or not ("nodes" in raw or "links" in raw):
        return None
    links_raw = raw.get("links")
    meta = _collect_meta_labels(links_raw)
    nodes = _decode_nodes(raw.get("nodes"), meta)
    return _Fragment(nodes or None, _decode_links(links_raw, _Hints(), ligand_role), meta)


def _decode_bare_links(raw: Any, ligand_role: str) -> Optional[_Fragment]:
    if not isinstance(raw, (list, tuple)):
        return None
    return _Fragment(None, _decode_links(raw, _Hints(), ligand_role), _collect_meta_labels(raw))


def _decode_typed_dict(raw: Any, ligand_role: str) -> Optional[_Fragment]:
    if not _is_obj(raw):
        return None
    return _Fragment(None, _decode_links(raw, _Hints(), ligand_role), _collect_meta_labels(raw))


_PAYLOAD_DECODERS = (_decode_payload, _decode_bare_links, _decode_typed_dict)


# ------------------------------------------------------------------- assembly

class _Resolver:
    """Maps link endpoint references onto node ids (id, then index, then label)."""

    def __init__(self, nodes: Sequence[Node]):
        self.nodes = nodes
        self.by_id = {n.id: n.id for n in nodes}
        self.by_label: Dict[str, str] = {}
        for n in nodes:
            self.by_label.setdefault(n.label, n.id)

    def __call__(self, ref: str) -> Optional[str]:
        if ref in self.by_id:
            return ref
        if ref.isdigit():
            idx = int(ref)
            if idx < len(self.nodes):
                return self.nodes[idx].id
        return self.by_label.get(ref)


def _synthesize_nodes(links: Iterable[_RawLink], meta_labels: Mapping[str, str]) -> List[Node]:
    nodes: List[Node] = []
    seen = set()
    for link in links:
        for ref in (link.source, link.target):
            if ref in seen:
                continue
            seen.add(ref)
            label = meta_labels.get(ref, ref)
            nodes.append(Node(id=ref, label=label, role=role_from_label(label)))
    return nodes


def _coerce_raw(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("normalizer: input is not JSON; treating as empty graph")
            return None
    return raw


def normalize_graph(raw: Any, ligand_role: str = "A") -> Graph:
    """Normalize any accepted raw shape into a canonical Graph.

    Never raises on malformed input: unusable nodes/links are dropped and a
    completely unusable payload yields the empty graph.
    """
    raw = _coerce_raw(raw)
    if raw is None:
        return Graph.empty()

    fragment = None
    for decode in _PAYLOAD_DECODERS:
        fragment = decode(raw, ligand_role)
        if fragment is not None:
            break
    if fragment is None:
        logger.debug(f"normalizer: unsupported payload type {type(raw).__name__}")
        return Graph.empty()

    nodes = fragment.nodes if fragment.nodes else _synthesize_nodes(fragment.links, fragment.meta_labels)
    resolve = _Resolver(nodes)
    roles = {n.id: n.role for n in nodes}

    links: List[Link] = []
    unresolved = 0
    for rl in fragment.links:
        source = resolve(rl.source)
        target = resolve(rl.target)
        if source is None or target is None:
            unresolved += 1
            continue
        pair = rl.pair or derive_tier(roles.get(source), roles.get(target), ligand_role)
        links.append(Link(source, target, rl.type, rl.distance, rl.angle, pair))
    if unresolved:
        logger.debug(f"normalizer: dropped {unresolved} links with unresolvable endpoints")

    graph = Graph(tuple(nodes), tuple(links))
    logger.debug(f"normalizer: built graph nodes={len(graph.nodes)} links={len(graph.links)}")
    return graph


def graph_summary(graph: Graph) -> Dict[str, int]:
    """Node/link counts, as shown next to the atom and residue graph tabs."""
    return graph.summary()

"""Interaction tables built from the canonical graph.

Atom rows list one link each; residue rows aggregate identical
(label, label, type) triples with a count. Both are plain dict rows so the
API can return them directly; ``*_frame`` and ``to_csv`` wrap them in pandas
for export.
"""
from __future__ import annotations
from collections import Counter
import math
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from kinograph.analysis.graph import Graph, Link

ATOM_COLUMNS = ["Atom1", "Atom2", "Interaction Type", "Distance(Å)", "Angle(°)"]
RESIDUE_COLUMNS = ["Count", "Atom1", "Atom2", "Interaction Type"]

# Column names used in exported CSV files
ATOM_CSV_COLUMNS = {"Distance(Å)": "Distance", "Angle(°)": "Angle"}
RESIDUE_CSV_COLUMNS = {"Atom1": "Residue1", "Atom2": "Residue2"}

SEARCH_SCOPES = ("all", "atom", "type", "distance")


def fmt3(value: Optional[float]) -> str:
    if value is None or not math.isfinite(value):
        return "-"
    return f"{value:.3f}"


def _angle(value: Optional[float]) -> str:
    # backends emit 0 for "no angle"
    if value is None or value == 0:
        return "-"
    return fmt3(value)


def _endpoint_labels(graph: Graph, link: Link):
    return graph.label_of(link.source), graph.label_of(link.target)


def atom_rows(graph: Graph, links: Optional[Iterable[Link]] = None) -> List[Dict[str, Any]]:
    rows = []
    for link in graph.links if links is None else links:
        a1, a2 = _endpoint_labels(graph, link)
        rows.append({
            "Atom1": a1,
            "Atom2": a2,
            "Interaction Type": link.type or "-",
            "Distance(Å)": fmt3(link.distance),
            "Angle(°)": _angle(link.angle),
        })
    return rows


def residue_rows(graph: Graph, links: Optional[Iterable[Link]] = None) -> List[Dict[str, Any]]:
    counts: Counter = Counter()
    for link in graph.links if links is None else links:
        a1, a2 = _endpoint_labels(graph, link)
        counts[(a1, a2, link.type or "-")] += 1
    rows = [
        {"Count": n, "Atom1": a1, "Atom2": a2, "Interaction Type": t}
        for (a1, a2, t), n in counts.items()
    ]
    rows.sort(key=lambda r: (-r["Count"], r["Atom1"]))
    return rows


def filter_rows_by_type(rows: Iterable[Dict[str, Any]], types: Optional[Iterable[str]]) -> List[Dict[str, Any]]:
    """Keep rows whose type is in ``types``; None keeps everything."""
    if types is None:
        return list(rows)
    wanted = set(types)
    return [r for r in rows if r["Interaction Type"] in wanted]


def search_rows(rows: Iterable[Dict[str, Any]], query: str, scope: str = "all") -> List[Dict[str, Any]]:
    """Case-insensitive substring search over atom table rows."""
    q = (query or "").strip().lower()
    rows = list(rows)
    if not q:
        return rows
    if scope not in SEARCH_SCOPES:
        raise ValueError(f"unknown search scope {scope!r}")

    def hay(r: Dict[str, Any]) -> str:
        atoms = f"{r['Atom1']} {r['Atom2']}"
        if scope == "atom":
            return atoms
        if scope == "type":
            return r["Interaction Type"]
        if scope == "distance":
            return str(r.get("Distance(Å)", ""))
        return " ".join([atoms, r["Interaction Type"], str(r.get("Distance(Å)", "")), str(r.get("Angle(°)", ""))])

    return [r for r in rows if q in hay(r).lower()]


def atom_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=ATOM_COLUMNS)


def residue_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=RESIDUE_COLUMNS)


def to_csv(df: pd.DataFrame) -> str:
    """CSV text with export column names."""
    if "Count" in df.columns:
        out = df.rename(columns=RESIDUE_CSV_COLUMNS)
        out = out[["Count", "Residue1", "Residue2", "Interaction Type"]]
    else:
        out = df.rename(columns=ATOM_CSV_COLUMNS)
    return out.to_csv(index=False)

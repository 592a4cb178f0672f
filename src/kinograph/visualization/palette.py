"""Centralized color palette for interaction lines and graph nodes.

Interaction classes get fixed, distinguishable hex colors shared by the 2D
graph, the distance representations in the 3D viewer and exported tables.
Node colors are assigned per chain role: ``A`` (ligand) and ``R`` (receptor)
are reserved, other roles draw from a categorical palette in first-seen order.
"""
from __future__ import annotations

from typing import Dict, Iterable, List

from kinograph.analysis.keys import resolve_key

TYPE_HEX: Dict[str, str] = {
    "clash": "#e11d48",
    "covalent": "#d97706",
    "vdw_clash": "#a21caf",
    "vdw": "#0284c7",
    "proximal": "#65a30d",
    "hbond": "#2563eb",
    "weak_hbond": "#4338ca",
    "halogen_bond": "#0891b2",
    "ionic": "#059669",
    "metal_complex": "#0d9488",
    "aromatic": "#7e22ce",
    "hydrophobic": "#ea580c",
    "carbonyl": "#b45309",
    "polar": "#334155",
    "weak_polar": "#3f3f46",
}

DEFAULT_COLOR = "#999999"

RESERVED_ROLE_COLORS: Dict[str, str] = {"A": "#60a5fa", "R": "#f87171"}

ROLE_PALETTE: List[str] = [
    "#10b981", "#f59e0b", "#8b5cf6", "#14b8a6", "#ef4444", "#3b82f6", "#eab308",
    "#22c55e", "#06b6d4", "#f97316", "#a855f7", "#84cc16", "#f43f5e", "#0ea5e9",
]

# Palette entries too close to the reserved A / R colors
_NEAR_RESERVED = {"#3b82f6", "#ef4444"}


def get_color(interaction_key: str) -> str:
    return TYPE_HEX.get(resolve_key(interaction_key or ""), DEFAULT_COLOR)


def build_role_color_map(roles: Iterable[str]) -> Dict[str, str]:
    """Assign each distinct role a color; order of first appearance decides."""
    palette = [c for c in ROLE_PALETTE if c not in _NEAR_RESERVED]
    colors: Dict[str, str] = {}
    i = 0
    for role in roles:
        if not role or role in colors:
            continue
        reserved = RESERVED_ROLE_COLORS.get(role.upper())
        if reserved:
            colors[role] = reserved
            continue
        colors[role] = palette[i % len(palette)]
        i += 1
    return colors

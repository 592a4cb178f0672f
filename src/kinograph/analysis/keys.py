"""Canonical interaction keys, tier labels & alias resolution.

Backends disagree on spelling (``hydrogen_bond`` vs ``hbond``, ``A-R`` vs
``AR``); everything is resolved here so the rest of the pipeline compares
canonical strings only.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, Optional

from kinograph.utils.config import INTERACTION_TYPES

PROXIMAL = "proximal"

CANONICAL_KEYS = {k: k for k in INTERACTION_TYPES}

# Legacy / backend variants mapped to canonical
ALIASES: Dict[str, str] = {
    "hydrogen_bond": "hbond",
    "hydrogenbond": "hbond",
    "h_bond": "hbond",
    "weak_hydrogen_bond": "weak_hbond",
    "weakhbond": "weak_hbond",
    "halogen": "halogen_bond",
    "halogenbond": "halogen_bond",
    "van_der_waals": "vdw",
    "vanderwaals": "vdw",
    "vdwclash": "vdw_clash",
    "van_der_waals_clash": "vdw_clash",
    "metal": "metal_complex",
    "metal_coordination": "metal_complex",
    "ionic_interaction": "ionic",
    "pi_stacking": "aromatic",
    "hydrophobic_contact": "hydrophobic",
    "weakpolar": "weak_polar",
    **CANONICAL_KEYS,
}


def resolve_key(key: str) -> str:
    """Resolve arbitrary key to canonical form (fallback: normalized original)."""
    if not key:
        return key
    lowered = key.lower().strip().replace("-", "_").replace(" ", "_")
    return ALIASES.get(lowered, lowered)


def is_interaction_type(key: str) -> bool:
    return resolve_key(key) in CANONICAL_KEYS


class Tier(str, Enum):
    """Chain-role relationship of a link's two endpoints."""

    SAME_A = "same_a"
    SAME_B = "same_b"
    CROSS = "cross"

    @property
    def short(self) -> str:
        return {"same_a": "AA", "same_b": "RR", "cross": "AR"}[self.value]


TIER_ORDER = (Tier.SAME_A, Tier.CROSS, Tier.SAME_B)

_TIER_WORDS = {
    "same_a": Tier.SAME_A,
    "same_b": Tier.SAME_B,
    "cross": Tier.CROSS,
    "aa": Tier.SAME_A,
    "rr": Tier.SAME_B,
    "bb": Tier.SAME_B,
    "ar": Tier.CROSS,
    "ra": Tier.CROSS,
}


def derive_tier(role_a: Optional[str], role_b: Optional[str], ligand_role: str = "A") -> Optional[Tier]:
    """Tier from two endpoint roles; None when either role is unknown."""
    if not role_a or not role_b:
        return None
    a = role_a.upper()
    b = role_b.upper()
    if a != b:
        return Tier.CROSS
    return Tier.SAME_A if a == ligand_role.upper() else Tier.SAME_B


def parse_tier(key: object, ligand_role: str = "A") -> Optional[Tier]:
    """Interpret a tier label such as ``A-R``, ``R-R``, ``AR`` or ``same_a``.

    Chain-pair keys (``X-Y``) are read as two roles; anything unrecognised
    yields None so callers can fall back to role derivation.
    """
    if isinstance(key, Tier):
        return key
    if not isinstance(key, str):
        return None
    text = key.strip()
    if not text:
        return None
    word = _TIER_WORDS.get(text.lower())
    if word is not None:
        return word
    parts = [p.strip() for p in text.replace(":", "-").split("-")]
    if len(parts) == 2 and all(len(p) == 1 and p.isalnum() for p in parts):
        return derive_tier(parts[0], parts[1], ligand_role)
    return None

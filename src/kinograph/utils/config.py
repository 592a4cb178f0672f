"""
Configuration management for the KinoGraph interaction-graph pipeline.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import hashlib
import json
import os

import yaml
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Interaction classes in display order. The order drives filter pills,
# distance representation install order and per-type tables.
INTERACTION_TYPES: Tuple[str, ...] = (
    "clash",
    "covalent",
    "vdw_clash",
    "vdw",
    "proximal",
    "hbond",
    "weak_hbond",
    "halogen_bond",
    "ionic",
    "metal_complex",
    "aromatic",
    "hydrophobic",
    "carbonyl",
    "polar",
    "weak_polar",
)


@dataclass
class FilterConfig:
    """Defaults for the interaction filter."""

    # Distance thresholds offered for the proximity class (Angstrom)
    proximity_thresholds: List[float] = field(default_factory=lambda: [3.0, 4.0, 5.0])
    default_proximity_threshold: float = 5.0
    show_isolated_nodes: bool = False
    # Role token used for the ligand side when deriving same-role tiers
    ligand_role: str = "A"


@dataclass
class LayoutConfig:
    """Force simulation parameters."""

    link_distance: float = 140.0
    # When set, finite interaction distances are scaled into layout units
    distance_scale: Optional[float] = None
    link_strength: float = 0.7
    charge_strength: float = -220.0
    charge_distance_max: float = 600.0
    center_strength: float = 0.05
    collide_padding: float = 6.0
    collide_strength: float = 1.0
    velocity_decay: float = 0.5
    alpha_min: float = 0.001
    alpha_decay: float = 1 - 0.001 ** (1 / 300)
    tick_budget: int = 160
    width: float = 640.0
    height: float = 420.0
    min_radius: float = 4.0
    max_radius: float = 18.0
    parallel_spread: float = 14.0
    seed: int = 42


@dataclass
class ViewerConfig:
    """Representation parameters handed to the structure viewer."""

    highlight_kind: str = "ball+stick"
    highlight_params: Dict[str, object] = field(default_factory=lambda: {
        "multipleBond": True,
        "scale": 1.0,
        "aspectRatio": 1.5,
    })
    base_kind: str = "cartoon"
    base_params: Dict[str, object] = field(default_factory=lambda: {
        "colorScheme": "sstruc",
        "quality": "high",
    })
    distance_linewidth: float = 2.0
    max_selection_atoms: Optional[int] = 1500
    max_distance_pairs: int = 2500
    viewer_width: int = 800
    viewer_height: int = 600
    background_color: str = "white"


@dataclass
class FetchConfig:
    """Backend feeds supplying interaction JSON."""

    backend_url: Optional[str] = None
    atom_graph_path: str = "atom_graph/{pdb}_graph.json"
    residue_graph_path: str = "res_graph/{pdb}_graph.json"
    viewer_json_path: str = "json/{pdb}.json"
    timeout_seconds: float = 30.0
    structure_url: str = "https://files.rcsb.org/download/{pdb}.pdb"


@dataclass
class AppConfig:
    """Main application configuration."""

    app_name: str = "KinoGraph Interaction Explorer"
    version: str = "1.0.0"
    debug: bool = False

    filters: FilterConfig = field(default_factory=FilterConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    viewer: ViewerConfig = field(default_factory=ViewerConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)

    _param_hash: str = field(default="", init=False, repr=False)

    def __post_init__(self):
        """Apply environment and optional YAML overrides."""
        if self.fetch.backend_url is None:
            self.fetch.backend_url = os.getenv("KINOGRAPH_BACKEND_URL") or os.getenv("NEXT_PUBLIC_BACKEND_URL")

        override_path = os.getenv("KINOGRAPH_CONFIG_FILE")
        if override_path:
            self.apply_overrides_file(Path(override_path))

    def apply_overrides_file(self, path: Path) -> None:
        """Merge a YAML file of section -> {field: value} into this config.

        Unknown sections and fields are ignored; a missing or malformed file
        leaves the config untouched.
        """
        if not path.exists():
            print(f"Warning: config override file not found: {path}")
            return
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: failed loading config overrides: {e}")
            return
        if not isinstance(data, dict):
            return
        for section_name, values in data.items():
            key = str(section_name).strip().lower().replace(" ", "_")
            section = getattr(self, key, None)
            if section is None or not isinstance(values, dict):
                continue
            for fname, value in values.items():
                if hasattr(section, fname):
                    setattr(section, fname, value)
        self._param_hash = ""

    def compute_hash(self) -> str:
        """Short stable digest of the public configuration values."""
        data = {k: v for k, v in asdict(self).items() if not k.startswith('_')}
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:10]
        self._param_hash = digest
        return digest

    @property
    def param_hash(self) -> str:
        if not self._param_hash:
            return self.compute_hash()
        return self._param_hash


def load_config() -> AppConfig:
    """Load application configuration."""
    return AppConfig()


def get_interaction_types() -> List[str]:
    """Get list of all supported interaction types."""
    return list(INTERACTION_TYPES)


def get_interaction_display_names() -> Dict[str, str]:
    """Get human-readable names for interaction types."""
    return {
        "clash": "Clash",
        "covalent": "Covalent",
        "vdw_clash": "VdW Clash",
        "vdw": "Van der Waals",
        "proximal": "Proximal",
        "hbond": "Hydrogen Bond",
        "weak_hbond": "Weak Hydrogen Bond",
        "halogen_bond": "Halogen Bond",
        "ionic": "Ionic",
        "metal_complex": "Metal Complex",
        "aromatic": "Aromatic",
        "hydrophobic": "Hydrophobic",
        "carbonyl": "Carbonyl",
        "polar": "Polar",
        "weak_polar": "Weak Polar",
    }

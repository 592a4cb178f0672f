"""
3D structure viewer backed by py3Dmol.

Implements the representation capability the synchronizer drives
(``load_structure`` / ``add_representation`` / ``remove_representation``)
and renders the current state to standalone HTML.
"""

from io import StringIO
import itertools
import re
from typing import Any, Dict, List, Optional, Tuple

import py3Dmol
import requests
from Bio.PDB.PDBParser import PDBParser
from loguru import logger

from kinograph.errors import ViewerUnavailableError
from kinograph.utils.config import AppConfig

_ATOM_RE = re.compile(r"^@(\d+)$")
_RESIDUE_RE = re.compile(r"^:(\S+)\s+and\s+resi\s+(-?\d+)$")

# NGL-style color schemes mapped onto 3Dmol equivalents
_COLOR_SCHEMES = {"sstruc": "ssJmol", "chainid": "chain", "element": "Jmol"}

Coord = Tuple[float, float, float]


def translate_selection(expression: Optional[str]) -> Optional[Dict[str, Any]]:
    """Selection expression -> 3Dmol AtomSelectionSpec.

    ``@12 or @45`` becomes ``{"serial": [12, 45]}``; residue fragments are
    grouped by chain (``{"chain": "A", "resi": [10, 11]}``) and combined with
    ``or`` when more than one chain is involved. Unrecognised fragments are
    ignored.
    """
    if not expression:
        return None
    serials: List[int] = []
    residues: Dict[str, List[int]] = {}
    for part in expression.split(" or "):
        part = part.strip()
        m = _ATOM_RE.match(part)
        if m:
            serials.append(int(m.group(1)))
            continue
        m = _RESIDUE_RE.match(part)
        if m:
            residues.setdefault(m.group(1), []).append(int(m.group(2)))
            continue
        logger.debug(f"structure_viewer: ignoring selection fragment {part!r}")

    specs: List[Dict[str, Any]] = []
    if serials:
        specs.append({"serial": serials})
    specs.extend({"chain": chain, "resi": resi} for chain, resi in residues.items())
    if not specs:
        return None
    return specs[0] if len(specs) == 1 else {"or": specs}


class Py3DmolViewer:
    """Handles 3D visualization of one structure and its representations."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or AppConfig()
        self.viewer_config = self.config.viewer
        self.parser = PDBParser(QUIET=True)
        self.structure_id: Optional[str] = None
        self.pdb_text: Optional[str] = None
        self.coords: Dict[int, Coord] = {}
        self.representations: Dict[int, Tuple[str, Dict[str, Any]]] = {}
        self._handles = itertools.count(1)

    def load_structure(self, structure_id: str, source: Any = None) -> str:
        """Load PDB text (``source``) or download it by id; resets representations."""
        text = source if isinstance(source, str) and source.strip() else self._download(structure_id)
        self.pdb_text = text
        self.structure_id = structure_id
        self.coords = self._atom_coords(structure_id, text)
        self.representations = {}
        logger.info(f"Loaded structure {structure_id} ({len(self.coords)} atoms)")
        return structure_id

    def _download(self, structure_id: str) -> str:
        url = self.config.fetch.structure_url.format(pdb=structure_id)
        response = requests.get(url, timeout=self.config.fetch.timeout_seconds)
        response.raise_for_status()
        return response.text

    def _atom_coords(self, structure_id: str, text: str) -> Dict[int, Coord]:
        structure = self.parser.get_structure(structure_id, StringIO(text))
        coords: Dict[int, Coord] = {}
        for atom in structure.get_atoms():
            serial = atom.get_serial_number()
            if serial is not None:
                x, y, z = (float(v) for v in atom.coord)
                coords[int(serial)] = (x, y, z)
        return coords

    def add_representation(self, kind: str, params: Dict[str, Any]) -> int:
        if self.structure_id is None:
            raise ViewerUnavailableError("no structure loaded")
        handle = next(self._handles)
        self.representations[handle] = (kind, dict(params))
        return handle

    def remove_representation(self, handle: int) -> None:
        if self.representations.pop(handle, None) is None:
            raise KeyError(f"unknown representation handle {handle}")

    # ------------------------------------------------------------ rendering

    def _apply(self, view, kind: str, params: Dict[str, Any]) -> None:
        if kind == "cartoon":
            scheme = _COLOR_SCHEMES.get(params.get("colorScheme", "sstruc"), "ssJmol")
            view.setStyle({}, {"cartoon": {"colorscheme": scheme}})
        elif kind == "ball+stick":
            sel = translate_selection(params.get("sele"))
            if sel is None:
                return
            scale = float(params.get("scale", 1.0))
            view.addStyle(sel, {"stick": {"radius": 0.15 * scale}, "sphere": {"scale": 0.25 * scale}})
        elif kind == "distance":
            color = params.get("colorValue", "#888888")
            for a, b in params.get("atomPair", []):
                start = self._serial_coord(a)
                end = self._serial_coord(b)
                if start is None or end is None:
                    continue
                view.addCylinder({
                    "start": dict(zip("xyz", start)),
                    "end": dict(zip("xyz", end)),
                    "radius": 0.05 * float(params.get("linewidth", 2)),
                    "color": color,
                    "dashed": True,
                    "fromCap": 1,
                    "toCap": 1,
                })
        else:
            logger.debug(f"structure_viewer: unsupported representation kind {kind!r}")

    def _serial_coord(self, token: str) -> Optional[Coord]:
        m = _ATOM_RE.match(str(token))
        return self.coords.get(int(m.group(1))) if m else None

    def build_view(self):
        if self.pdb_text is None:
            raise ViewerUnavailableError("no structure loaded")
        vc = self.viewer_config
        view = py3Dmol.view(width=vc.viewer_width, height=vc.viewer_height)
        view.addModel(self.pdb_text, "pdb")
        view.setStyle({}, {"line": {}})
        # base representations first so highlights are layered on top
        ordered = sorted(self.representations.items(), key=lambda kv: (kv[1][0] != "cartoon", kv[0]))
        for _, (kind, params) in ordered:
            self._apply(view, kind, params)
        view.setBackgroundColor(vc.background_color)
        view.zoomTo()
        return view

    def to_html(self) -> str:
        return self.build_view()._make_html()

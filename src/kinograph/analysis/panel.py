"""Interaction panel controller.

Holds the per-structure state of the interaction view (normalized graphs,
filter state, mode, layout) and runs one recomputation pass per user action:

    normalize (on new data) -> filter -> layout + selection -> viewer sync

Everything except the feed fetch runs synchronously on the caller's thread.
"""
from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from kinograph.analysis.filters import FilterResult, FilterState, filter_graph
from kinograph.analysis.graph import Graph
from kinograph.analysis.keys import Tier
from kinograph.analysis.normalizer import normalize_graph
from kinograph.reporting.tables import atom_rows, residue_rows
from kinograph.utils.config import AppConfig, load_config
from kinograph.utils.data_client import InteractionDataClient
from kinograph.utils.logging_config import emit_metrics
from kinograph.utils.settings import get_settings
from kinograph.visualization.layout import ForceLayout, LayoutResult
from kinograph.visualization.selection import ATOM, MODES, RESIDUE, atom_pairs_by_type, compile_selection
from kinograph.visualization.viewer_sync import SyncOutcome, SyncRequest, ViewerComponent, ViewerSynchronizer


@dataclass
class PanelView:
    """Output of one recomputation pass."""

    mode: str
    result: FilterResult
    layout: LayoutResult
    selection: Optional[str]
    pairs_by_type: Dict[str, List[tuple]] = field(default_factory=dict)
    sync: Optional[SyncOutcome] = None

    def rows(self) -> List[Dict[str, Any]]:
        graph = self.result.graph
        return atom_rows(graph) if self.mode == ATOM else residue_rows(graph)


class InteractionPanel:
    def __init__(self, config: Optional[AppConfig] = None,
                 synchronizer: Optional[ViewerSynchronizer] = None,
                 client: Optional[InteractionDataClient] = None):
        self.config = config or load_config()
        self.synchronizer = synchronizer or ViewerSynchronizer(config=self.config.viewer)
        self.client = client or InteractionDataClient(self.config.fetch)
        self.state = FilterState(
            proximity_threshold=self.config.filters.default_proximity_threshold,
            show_isolated=self.config.filters.show_isolated_nodes,
        )
        self.mode = ATOM
        self.pdb_id: Optional[str] = None
        self.graphs: Dict[str, Graph] = {ATOM: Graph.empty(), RESIDUE: Graph.empty()}
        self.layouts: Dict[str, ForceLayout] = {m: ForceLayout(self.config.layout) for m in MODES}
        self.view: Optional[PanelView] = None
        self._fresh = True

    @property
    def ligand_role(self) -> str:
        return self.config.filters.ligand_role

    @property
    def graph(self) -> Graph:
        return self.graphs[self.mode]

    # ------------------------------------------------------------ data

    def load_data(self, pdb_id: str, atom_graph: Any = None, residue_graph: Any = None,
                  viewer_json: Any = None, structure: Any = None) -> PanelView:
        """Normalize freshly fetched feeds and recompute.

        The atom graph falls back to the viewer JSON feed when the atom feed
        is empty. The filter state survives data changes; on the very first
        load every type present in the data is activated.
        """
        atoms = normalize_graph(atom_graph, self.ligand_role)
        if atoms.is_empty and viewer_json is not None:
            atoms = normalize_graph(viewer_json, self.ligand_role)
        residues = normalize_graph(residue_graph, self.ligand_role)
        self.graphs = {ATOM: atoms, RESIDUE: residues}
        logger.info(f"panel: loaded {pdb_id} atom={atoms.summary()} residue={residues.summary()}")

        if self._fresh:
            counts = filter_graph(self.graph, FilterState(), self.ligand_role).type_counts
            self.state.select_all(counts)
            self._fresh = False

        if pdb_id != self.pdb_id:
            self.pdb_id = pdb_id
            self.layouts = {m: ForceLayout(self.config.layout) for m in MODES}
            self.synchronizer.load_structure(pdb_id, structure)
        return self.recompute()

    async def refresh(self, pdb_id: str) -> Optional[PanelView]:
        """Fetch all feeds for ``pdb_id``; None when superseded by a newer refresh."""
        bundle = await self.client.fetch_all(pdb_id)
        if bundle is None:
            return None
        return self.load_data(pdb_id, bundle.atom_graph, bundle.residue_graph, bundle.viewer_json)

    def attach_viewer(self, viewer: ViewerComponent, structure: Any = None) -> Optional[PanelView]:
        self.synchronizer.attach(viewer)
        if self.pdb_id is None:
            return None
        self.synchronizer.load_structure(self.pdb_id, structure)
        return self.recompute()

    # ------------------------------------------------------------ user actions

    def toggle_type(self, type_: str) -> PanelView:
        self.state.toggle_type(type_)
        return self.recompute()

    def toggle_tier(self, type_: str, tier: Tier) -> PanelView:
        self.state.toggle_tier(type_, tier)
        return self.recompute()

    def select_all(self) -> PanelView:
        counts = self.view.result.type_counts if self.view else None
        self.state.select_all(counts)
        return self.recompute()

    def clear_all(self) -> PanelView:
        self.state.clear_all()
        return self.recompute()

    def set_mode(self, mode: str) -> PanelView:
        if mode not in MODES:
            raise ValueError(f"unknown mode {mode!r}; expected one of {MODES}")
        self.mode = mode
        return self.recompute()

    def set_proximity(self, enabled: bool, threshold: Optional[float] = None) -> PanelView:
        try:
            self.state.set_proximity(enabled, threshold)
        except ValueError as e:
            logger.warning(f"panel: {e}; keeping threshold {self.state.proximity_threshold}")
        return self.recompute()

    def set_show_isolated(self, show: bool) -> PanelView:
        self.state.show_isolated = bool(show)
        return self.recompute()

    # ------------------------------------------------------------ pass

    def recompute(self) -> PanelView:
        t0 = time.perf_counter()
        result = filter_graph(self.graph, self.state, self.ligand_role)

        engine = self.layouts[self.mode]
        warm = bool(engine.ids)
        engine.update(result.nodes, result.links)
        layout = engine.run(warm=warm)

        vc = self.config.viewer
        selection = compile_selection(result.nodes, self.mode, vc.max_selection_atoms)
        pairs: Dict[str, Any] = {}
        if self.mode == ATOM:
            pairs = atom_pairs_by_type(result.nodes, result.links, self.state.active_types, vc.max_distance_pairs)
        outcome = self.synchronizer.sync(SyncRequest(
            selection=selection,
            pairs_by_type=pairs,
            filters=self.state.signature_fields(),
            link_count=len(result.links),
            mode=self.mode,
        ))
        if get_settings().verbose_selection_logs:
            logger.info(
                f"panel: mode={self.mode} links={len(result.links)} nodes={len(result.nodes)} "
                f"fragments={selection.count(' or ') + 1 if selection else 0} sync={outcome.status}"
            )
        emit_metrics({
            "event": "panel_recompute",
            "pdb": self.pdb_id,
            "mode": self.mode,
            "links": len(result.links),
            "nodes": len(result.nodes),
            "sync": outcome.status,
            "elapsed_ms": round((time.perf_counter() - t0) * 1000.0, 2),
        })
        self.view = PanelView(self.mode, result, layout, selection, pairs, outcome)
        return self.view

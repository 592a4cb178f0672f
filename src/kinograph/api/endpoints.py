"""
REST API endpoints for the KinoGraph interaction-graph pipeline.
Proxies the backend interaction feeds and serves filtered graph views.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from kinograph.analysis.filters import FilterState, filter_graph
from kinograph.analysis.graph import Graph
from kinograph.analysis.keys import parse_tier, resolve_key
from kinograph.analysis.normalizer import normalize_graph
from kinograph.errors import DataFetchError
from kinograph.reporting.tables import atom_rows, residue_rows
from kinograph.utils.config import AppConfig
from kinograph.utils.data_client import ATOM_GRAPH, RESIDUE_GRAPH, VIEWER_JSON, InteractionDataClient
from kinograph.utils.logging_config import configure_logging, emit_metrics
from kinograph.utils.settings import get_settings
from kinograph.visualization.layout import layout_graph
from kinograph.visualization.palette import build_role_color_map, get_color
from kinograph.visualization.selection import ATOM, MODES, atom_pairs_by_type, compile_selection, split_selection

settings = get_settings()
configure_logging(json_logs=settings.json_logging, level=settings.log_level)

# Initialize app
app = FastAPI(
    title="KinoGraph Interaction API",
    description="Normalized, filtered protein-ligand interaction graphs",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.api_enable_gzip:
    app.add_middleware(GZipMiddleware, minimum_size=settings.api_gzip_min_size)

# Global configuration
config = AppConfig()
if settings.backend_url:
    config.fetch.backend_url = settings.backend_url
config.fetch.timeout_seconds = settings.request_timeout
config.viewer.max_selection_atoms = settings.max_selection_atoms
config.viewer.max_distance_pairs = settings.max_distance_pairs


def get_client() -> InteractionDataClient:
    """One client per request so concurrent requests never supersede each other."""
    return InteractionDataClient(config.fetch)


# API Endpoints

@app.get("/health", tags=["General"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "backend_configured": bool(config.fetch.backend_url),
        "config_hash": config.param_hash,
    }


async def _proxy(feed: str, pdb: str, client: InteractionDataClient):
    if not client.config.backend_url:
        raise HTTPException(status_code=500, detail="KINOGRAPH_BACKEND_URL is not set")
    try:
        return await client.get_json(feed, pdb)
    except DataFetchError as e:
        logger.warning(f"api: proxy {feed} for {pdb} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/atom-graph/{pdb}", tags=["Feeds"])
async def atom_graph(pdb: str, client: InteractionDataClient = Depends(get_client)):
    return await _proxy(ATOM_GRAPH, pdb, client)


@app.get("/api/res-graph/{pdb}", tags=["Feeds"])
async def res_graph(pdb: str, client: InteractionDataClient = Depends(get_client)):
    return await _proxy(RESIDUE_GRAPH, pdb, client)


@app.get("/api/json/{pdb}", tags=["Feeds"])
async def viewer_json(pdb: str, client: InteractionDataClient = Depends(get_client)):
    return await _proxy(VIEWER_JSON, pdb, client)


def _split(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _build_state(graph: Graph, types: Optional[str], tiers: Optional[str],
                 proximity: Optional[float], show_isolated: bool) -> FilterState:
    ligand_role = config.filters.ligand_role
    state = FilterState(show_isolated=show_isolated)
    type_list = _split(types)
    if type_list is None:
        counts = filter_graph(graph, FilterState(), ligand_role).type_counts
        state.select_all(counts)
    else:
        for t in type_list:
            state.set_type(t, True)

    tier_list = _split(tiers)
    if tier_list is not None:
        parsed = []
        for t in tier_list:
            tier = parse_tier(t, ligand_role)
            if tier is None:
                raise HTTPException(status_code=400, detail=f"Unknown tier {t!r}")
            parsed.append(tier)
        for t in state.active_types:
            state.restrict_tiers(t, parsed)

    if proximity is not None:
        try:
            state.set_proximity(True, proximity)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return state


async def _load_graph(pdb: str, mode: str, client: InteractionDataClient) -> Graph:
    if mode not in MODES:
        raise HTTPException(status_code=400, detail=f"mode must be one of {list(MODES)}")
    bundle = await client.fetch_all(pdb)
    if bundle is None:
        raise HTTPException(status_code=409, detail="Request superseded")
    ligand_role = config.filters.ligand_role
    if mode == ATOM:
        graph = normalize_graph(bundle.atom_graph, ligand_role)
        if graph.is_empty:
            graph = normalize_graph(bundle.viewer_json, ligand_role)
        return graph
    return normalize_graph(bundle.residue_graph, ligand_role)


@app.get("/api/graph/{pdb}", tags=["Graph"])
async def graph_view(
    pdb: str,
    mode: str = Query(ATOM, description="atom or residue"),
    types: Optional[str] = Query(None, description="Comma separated interaction types (default: all present)"),
    tiers: Optional[str] = Query(None, description="Comma separated tiers, e.g. A-R,same_b"),
    proximity: Optional[float] = Query(None, description="Proximity threshold in Angstrom"),
    show_isolated: bool = Query(False),
    layout: bool = Query(True, description="Include force layout positions"),
    client: InteractionDataClient = Depends(get_client),
):
    """Filtered view of one structure's interaction graph."""
    graph = await _load_graph(pdb, mode, client)
    state = _build_state(graph, types, tiers, proximity, show_isolated)
    result = filter_graph(graph, state, config.filters.ligand_role)
    visible = result.graph
    payload: Dict[str, Any] = {
        "pdb": pdb,
        "mode": mode,
        **visible.to_dict(),
        "type_counts": result.type_counts,
        "tier_counts": {t: {k.value: n for k, n in c.items()} for t, c in result.tier_counts.items()},
        "present_pairs": {t: sorted(p.value for p in s) for t, s in result.present_pairs_by_type.items()},
        "proximity_available": result.proximity_available,
        "active_types": sorted(state.active_types),
        "selection": compile_selection(result.nodes, mode, config.viewer.max_selection_atoms),
        "role_colors": build_role_color_map(n.role for n in result.nodes),
        "type_colors": {t: get_color(t) for t in sorted({l.type for l in result.links if l.type})},
        "rows": atom_rows(visible) if mode == ATOM else residue_rows(visible),
        "layout": layout_graph(result.nodes, result.links, config.layout).to_dict() if layout else None,
    }
    emit_metrics({"event": "graph_view", "pdb": pdb, "mode": mode,
                  "nodes": len(result.nodes), "links": len(result.links)})
    return payload


@app.get("/api/selection/{pdb}", tags=["Graph"])
async def selection_view(
    pdb: str,
    mode: str = Query(ATOM),
    types: Optional[str] = Query(None),
    tiers: Optional[str] = Query(None),
    proximity: Optional[float] = Query(None),
    client: InteractionDataClient = Depends(get_client),
):
    """Viewer selection expression and distance pairs for a filtered view."""
    graph = await _load_graph(pdb, mode, client)
    state = _build_state(graph, types, tiers, proximity, False)
    result = filter_graph(graph, state, config.filters.ligand_role)
    selection = compile_selection(result.nodes, mode, config.viewer.max_selection_atoms)
    pairs: Dict[str, Any] = {}
    if mode == ATOM:
        pairs = atom_pairs_by_type(result.nodes, result.links, state.active_types, config.viewer.max_distance_pairs)
    return {
        "pdb": pdb,
        "mode": mode,
        "selection": selection,
        "fragments": len(split_selection(selection)),
        "pairs_by_type": {t: [list(p) for p in ps] for t, ps in pairs.items()},
    }


@app.exception_handler(DataFetchError)
async def fetch_error_handler(request, exc):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

import asyncio
import json
import logging
from logging.handlers import RotatingFileHandler

import httpx
import pytest

from conftest import MockViewer

from kinograph.analysis.keys import Tier
from kinograph.analysis.panel import InteractionPanel
from kinograph.utils.config import AppConfig, FetchConfig
from kinograph.utils.data_client import InteractionDataClient
from kinograph.visualization.viewer_sync import ViewerSynchronizer


@pytest.fixture
def panel(mock_viewer):
    cfg = AppConfig()
    cfg.layout.tick_budget = 20
    return InteractionPanel(cfg, ViewerSynchronizer(mock_viewer, cfg.viewer))


def test_first_load_activates_present_types(panel, mock_viewer, atom_payload, residue_payload):
    view = panel.load_data("1ABC", atom_payload, residue_payload)
    assert panel.state.active_types == frozenset({"hbond", "ionic", "covalent", "vdw"})
    assert len(view.result.links) == 5
    assert view.selection == "@101 or @102 or @76 or @80"
    assert view.sync.status == "synced"
    assert mock_viewer.count("load") == 1
    assert "cartoon" in mock_viewer.live_kinds()
    assert set(view.layout.positions) == {"n1", "n2", "n3", "n4"}


def test_user_actions_drive_sync(panel, mock_viewer, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    view = panel.toggle_type("vdw")
    assert "vdw" not in {l.type for l in view.result.links}
    assert view.sync.status == "synced"

    adds = mock_viewer.count("add")
    assert panel.recompute().sync.status == "unchanged"
    assert mock_viewer.count("add") == adds

    view = panel.clear_all()
    assert view.result.is_empty
    assert view.selection is None
    assert mock_viewer.live_kinds() == ["cartoon"]

    view = panel.select_all()
    assert len(view.result.links) == 5


def test_tier_toggle_and_proximity(panel, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    panel.clear_all()
    view = panel.toggle_tier("hbond", Tier.SAME_B)
    assert [(l.source, l.target) for l in view.result.links] == [("n3", "n4")]
    view = panel.set_proximity(True, 3.0)
    assert {(l.source, l.target) for l in view.result.links} == {("n3", "n4"), ("n1", "n3"), ("n1", "n2")}


def test_mode_switch_and_rows(panel, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    view = panel.set_mode("residue")
    assert view.mode == "residue"
    assert view.selection.startswith(":A and resi 1")
    assert view.rows()[0]["Count"] == 1
    assert view.pairs_by_type == {}
    with pytest.raises(ValueError):
        panel.set_mode("chain")


def test_show_isolated(panel, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    view = panel.set_show_isolated(True)
    assert len(view.result.nodes) == 5


def test_filter_state_survives_new_data(panel, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    panel.toggle_type("hbond")
    view = panel.load_data("1ABC", atom_payload, residue_payload)
    assert "hbond" not in panel.state.active_types
    assert all(l.type != "hbond" for l in view.result.links)


def test_viewer_mounted_later(atom_payload, residue_payload):
    cfg = AppConfig()
    cfg.layout.tick_budget = 5
    panel = InteractionPanel(cfg)
    view = panel.load_data("1ABC", atom_payload, residue_payload)
    assert view.sync.status == "skipped"

    viewer = MockViewer()
    view = panel.attach_viewer(viewer)
    assert view.sync.status == "synced"
    assert viewer.count("load") == 1
    assert "ball+stick" in viewer.live_kinds()


def test_refresh_through_client(mock_viewer, atom_payload, residue_payload, viewer_json_payload):
    feeds = {
        "/atom_graph/1ABC_graph.json": atom_payload,
        "/res_graph/1ABC_graph.json": residue_payload,
        "/json/1ABC.json": viewer_json_payload,
    }

    def handler(request):
        return httpx.Response(200, json=feeds[request.url.path])

    cfg = AppConfig()
    cfg.layout.tick_budget = 5
    client = InteractionDataClient(FetchConfig(backend_url="http://backend.test"), transport=httpx.MockTransport(handler))
    panel = InteractionPanel(cfg, ViewerSynchronizer(mock_viewer, cfg.viewer), client)
    view = asyncio.run(panel.refresh("1ABC"))
    assert view is not None
    assert len(view.result.links) == 5
    assert panel.pdb_id == "1ABC"


def test_recompute_emits_metrics(panel, atom_payload, residue_payload, tmp_path, monkeypatch):
    path = tmp_path / "metrics.log"
    monkeypatch.setenv("KINOGRAPH_METRICS_FILE", str(path))
    metrics_logger = logging.getLogger("metrics")
    try:
        panel.load_data("1ABC", atom_payload, residue_payload)
        for h in metrics_logger.handlers:
            h.flush()
        records = [json.loads(l) for l in path.read_text().splitlines() if l.strip()]
        last = records[-1]
        assert last["event"] == "panel_recompute"
        assert last["pdb"] == "1ABC" and last["links"] == 5 and last["sync"] == "synced"
    finally:
        for h in [h for h in metrics_logger.handlers if isinstance(h, RotatingFileHandler)]:
            metrics_logger.removeHandler(h)
            h.close()


def test_filter_updates_warm_start_the_layout(panel, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    engine = panel.layouts["atom"]
    assert engine.alpha > 0.28
    before = dict(panel.view.layout.positions)
    view = panel.toggle_type("vdw")
    assert engine.alpha < 0.28
    assert set(before) >= set(view.layout.positions)

    panel.load_data("2XYZ", atom_payload, residue_payload)
    assert panel.layouts["atom"] is not engine


def test_bad_proximity_threshold_is_ignored(panel, atom_payload, residue_payload):
    panel.load_data("1ABC", atom_payload, residue_payload)
    panel.set_proximity(True, 3.0)
    view = panel.set_proximity(True, -1.0)
    assert panel.state.proximity_threshold == 3.0
    assert view.sync.status == "unchanged"

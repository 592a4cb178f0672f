"""Viewer synchronizer behaviour against a call-recording mock viewer."""
from conftest import MockViewer

from kinograph.visualization.palette import TYPE_HEX
from kinograph.visualization.viewer_sync import SyncRequest, ViewerSynchronizer

PAIRS = {"hbond": [("@1", "@2")], "vdw": [("@1", "@3")]}


def _request(selection="@1 or @2 or @3", pairs=PAIRS, **kw):
    return SyncRequest(selection=selection, pairs_by_type=pairs, filters={"types": ["hbond", "vdw"]},
                       link_count=2, **kw)


def test_first_sync_installs_highlight_and_distances(mock_viewer):
    sync = ViewerSynchronizer(mock_viewer)
    out = sync.sync(_request())
    assert out.status == "synced" and out.changed
    assert out.highlight
    assert out.distance_types == ["hbond", "vdw"]
    assert mock_viewer.live_kinds() == ["ball+stick", "distance", "distance"]
    colors = sorted(p["colorValue"] for k, p in mock_viewer.live.values() if k == "distance")
    assert colors == sorted([TYPE_HEX["hbond"], TYPE_HEX["vdw"]])
    highlight = next(p for k, p in mock_viewer.live.values() if k == "ball+stick")
    assert highlight["sele"] == "@1 or @2 or @3"


def test_identical_sync_makes_no_viewer_calls(mock_viewer):
    sync = ViewerSynchronizer(mock_viewer)
    sync.sync(_request())
    before = len(mock_viewer.calls)
    out = sync.sync(_request())
    assert out.status == "unchanged"
    assert len(mock_viewer.calls) == before


def test_change_retracts_before_install(mock_viewer):
    sync = ViewerSynchronizer(mock_viewer)
    sync.sync(_request())
    start = len(mock_viewer.calls)
    sync.sync(_request(selection="@1 or @2", pairs={"hbond": [("@1", "@2")]}))
    ops = [c[0] for c in mock_viewer.calls[start:]]
    assert ops == ["remove", "remove", "remove", "add", "add"]
    assert mock_viewer.live_kinds() == ["ball+stick", "distance"]
    assert sync.installed_distance_types == ["hbond"]


def test_empty_selection_retracts_everything(mock_viewer):
    sync = ViewerSynchronizer(mock_viewer)
    sync.sync(_request())
    out = sync.sync(_request(selection=None))
    assert out.status == "synced"
    assert not out.highlight and out.distance_types == []
    assert mock_viewer.live == {}


def test_unmounted_viewer_is_skipped_without_recording():
    sync = ViewerSynchronizer()
    out = sync.sync(_request())
    assert out.status == "skipped"
    assert sync.last_signature is None

    viewer = MockViewer()
    sync.attach(viewer)
    out = sync.sync(_request())
    assert out.status == "synced"
    assert viewer.count("add") == 3


def test_viewer_errors_are_contained():
    viewer = MockViewer(fail_add=True)
    sync = ViewerSynchronizer(viewer)
    out = sync.sync(_request())
    assert out.status == "synced"
    assert out.errors == 3
    assert not out.highlight and out.distance_types == []
    # not recorded, so the next call retries
    assert sync.last_signature is None
    viewer.fail_add = False
    assert sync.sync(_request()).highlight


def test_remove_failure_does_not_raise():
    viewer = MockViewer()
    sync = ViewerSynchronizer(viewer)
    sync.sync(_request())
    viewer.fail_remove = True
    out = sync.sync(_request(selection="@9"))
    assert out.highlight
    assert out.errors == 3


def test_structure_loaded_once_with_single_base(mock_viewer):
    sync = ViewerSynchronizer(mock_viewer)
    assert sync.load_structure("1ABC", "PDB TEXT") is True
    assert sync.load_structure("1ABC", "PDB TEXT") is False
    assert sync.ensure_base() is False
    assert mock_viewer.count("load") == 1
    assert mock_viewer.live_kinds() == ["cartoon"]

    sync.sync(_request())
    assert sync.load_structure("2XYZ") is True
    assert mock_viewer.count("load") == 2
    # previous representations retracted, fresh base for the new structure
    assert mock_viewer.live_kinds() == ["cartoon"]
    assert sync.last_signature is None


def test_load_without_viewer_does_nothing():
    sync = ViewerSynchronizer()
    assert sync.load_structure("1ABC") is False
    assert sync.structure_id is None


def test_detach_and_clear(mock_viewer):
    sync = ViewerSynchronizer(mock_viewer)
    sync.sync(_request())
    sync.clear()
    assert mock_viewer.live == {}
    sync.detach()
    assert sync.viewer is None
    assert sync.sync(_request()).status == "skipped"


def test_signature_depends_on_every_input():
    base = _request()
    assert base.signature() == _request().signature()
    assert base.signature() != _request(mode="residue").signature()
    assert base.signature() != _request(selection="@1").signature()
    assert base.signature() != _request(pairs={}).signature()

import pytest

from kinograph.errors import ViewerUnavailableError
from kinograph.visualization.structure_viewer import Py3DmolViewer, translate_selection
from kinograph.visualization.viewer_sync import SyncRequest, ViewerSynchronizer


def _atom(serial, name, resn, chain, resi, x, y, z, element):
    return (f"ATOM  {serial:>5} {name:<4} {resn:>3} {chain}{resi:>4}    "
            f"{x:>8.3f}{y:>8.3f}{z:>8.3f}{1.0:>6.2f}{0.0:>6.2f}          {element:>2}")


PDB_TEXT = "\n".join([
    _atom(1, " N", "ALA", "A", 1, 0.0, 0.0, 0.0, "N"),
    _atom(2, " CA", "ALA", "A", 1, 1.5, 0.0, 0.0, "C"),
    _atom(3, " O", "GLY", "B", 7, 3.0, 1.0, -1.0, "O"),
    "END",
]) + "\n"


def test_translate_atom_and_residue_selections():
    assert translate_selection("@12 or @45") == {"serial": [12, 45]}
    assert translate_selection(":A and resi 10 or :A and resi 11") == {"chain": "A", "resi": [10, 11]}
    assert translate_selection(":A and resi 10 or :B and resi 3") == {
        "or": [{"chain": "A", "resi": [10]}, {"chain": "B", "resi": [3]}]
    }
    assert translate_selection(None) is None
    assert translate_selection("garbage") is None


def test_representations_require_structure():
    viewer = Py3DmolViewer()
    with pytest.raises(ViewerUnavailableError):
        viewer.add_representation("ball+stick", {"sele": "@1"})
    with pytest.raises(ViewerUnavailableError):
        viewer.to_html()


def test_load_and_render_from_text():
    viewer = Py3DmolViewer()
    viewer.load_structure("TEST", PDB_TEXT)
    assert set(viewer.coords) == {1, 2, 3}
    assert viewer.coords[3] == pytest.approx((3.0, 1.0, -1.0))

    handle = viewer.add_representation("distance", {"atomPair": [["@1", "@3"]], "colorValue": "#2563eb"})
    html = viewer.to_html()
    assert "addCylinder" in html
    viewer.remove_representation(handle)
    with pytest.raises(KeyError):
        viewer.remove_representation(handle)


def test_adapter_driven_by_synchronizer():
    viewer = Py3DmolViewer()
    sync = ViewerSynchronizer(viewer)
    assert sync.load_structure("TEST", PDB_TEXT)
    out = sync.sync(SyncRequest("@1 or @3", {"hbond": [("@1", "@3")]}))
    assert out.highlight and out.distance_types == ["hbond"]
    kinds = sorted(kind for kind, _ in viewer.representations.values())
    assert kinds == ["ball+stick", "cartoon", "distance"]
    html = viewer.to_html()
    assert "addStyle" in html

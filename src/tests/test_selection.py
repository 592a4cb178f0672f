import pytest

from kinograph.analysis.graph import Link, Node
from kinograph.visualization.selection import (
    atom_pairs_by_type,
    compile_residue_selection_from_labels,
    compile_selection,
    split_selection,
)


def _n(node_id, label, role="R"):
    return Node(node_id, label, role)


def test_atom_selection_dedups_in_order():
    nodes = [
        _n("a", "R/153/SER/OG/12"),
        _n("b", "237:A.O:ASP:45", "A"),
        _n("c", "R/153/SER/OG/12"),
        _n("d", "A/7/LIG/C1/7", "A"),
    ]
    sele = compile_selection(nodes, "atom")
    assert sele == "@12 or @45 or @7"
    assert split_selection(sele) == ["@12", "@45", "@7"]


def test_atom_selection_falls_back_to_id_and_skips_unresolvable():
    nodes = [_n("99", "no serial here"), _n("bar", "foo")]
    assert compile_selection(nodes, "atom") == "@99"


def test_atom_selection_cap():
    nodes = [_n(str(i), f"R/1/ALA/CA/{i}") for i in range(1, 6)]
    assert compile_selection(nodes, "atom", max_atoms=2) == "@1 or @2"


def test_residue_selection():
    nodes = [
        _n("a", "R/153/SER/OG/12"),
        _n("b", "R/153/SER/CB/13"),
        _n("c", "237:A.O:ASP:861", "A"),
    ]
    assert compile_selection(nodes, "residue") == ":R and resi 153 or :A and resi 861"


def test_empty_selection_is_none():
    assert compile_selection([], "atom") is None
    assert compile_selection([_n("x", "???")], "residue") is None
    assert split_selection(None) == []


def test_unknown_mode():
    with pytest.raises(ValueError):
        compile_selection([], "chain")


def test_residue_selection_from_labels():
    labels = ["R/153/SER", "A/503/LIG", "R/153/SER/OG/1", "junk"]
    assert compile_residue_selection_from_labels(labels) == ":R and resi 153 or :A and resi 503"


def test_atom_pairs_by_type():
    nodes = [_n("a", "A/1/LIG/C1/1", "A"), _n("b", "R/2/ALA/N/2"), _n("c", "R/3/GLY/O/3"), _n("d", "R/4/X")]
    links = [
        Link("a", "b", "vdw"),
        Link("a", "c", "hbond"),
        Link("a", "b", "hbond"),
        Link("a", "c", "hbond"),
        Link("a", "d", "hbond"),
        Link("b", "c", None),
    ]
    pairs = atom_pairs_by_type(nodes, links)
    assert list(pairs) == ["vdw", "hbond"]
    assert pairs["hbond"] == [("@1", "@3"), ("@1", "@2")]
    assert atom_pairs_by_type(nodes, links, active_types={"vdw"}) == {"vdw": [("@1", "@2")]}
    capped = atom_pairs_by_type(nodes, links, max_pairs=2)
    assert sum(len(v) for v in capped.values()) == 2


def test_index_ids_are_not_serials():
    from kinograph.analysis.normalizer import normalize_graph

    g = normalize_graph({
        "nodes": [{"label": "A/1/LIG"}, {"label": "R/153/SER"}, {}],
        "links": [
            {"source": 0, "target": 1, "type": "hbond"},
            {"source": 0, "target": 2, "type": "vdw"},
        ],
    })
    assert [n.id for n in g.nodes] == ["0", "1", "2"]
    assert compile_selection(g.nodes, "atom") is None
    assert atom_pairs_by_type(g.nodes, g.links) == {}
    assert compile_selection(g.nodes, "residue") == ":A and resi 1 or :R and resi 153"

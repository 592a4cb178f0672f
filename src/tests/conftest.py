"""Test configuration ensuring src package discoverability & shared fixtures."""
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]  # points to src/
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def reset_settings_cache():  # convenience for tests toggling env flags
    from kinograph.utils.settings import get_settings
    get_settings.cache_clear()


class MockViewer:
    """Records every viewer call; optionally fails on add/remove."""

    def __init__(self, fail_add=False, fail_remove=False):
        self.calls = []
        self.live = {}
        self.fail_add = fail_add
        self.fail_remove = fail_remove
        self._next = 0

    def load_structure(self, structure_id, source):
        self.calls.append(("load", structure_id))
        return structure_id

    def add_representation(self, kind, params):
        self.calls.append(("add", kind))
        if self.fail_add:
            raise RuntimeError("add failed")
        self._next += 1
        self.live[self._next] = (kind, params)
        return self._next

    def remove_representation(self, handle):
        self.calls.append(("remove", handle))
        if self.fail_remove:
            raise RuntimeError("remove failed")
        del self.live[handle]

    def count(self, op):
        return sum(1 for c in self.calls if c[0] == op)

    def live_kinds(self):
        return sorted(kind for kind, _ in self.live.values())


@pytest.fixture
def mock_viewer():
    return MockViewer()


@pytest.fixture
def atom_payload():
    """Atom graph in the {nodes, links} shape with explicit pairs on some links."""
    return {
        "nodes": [
            {"id": "n1", "label": "A/1/LIG/C1/101"},
            {"id": "n2", "label": "A/1/LIG/O2/102"},
            {"id": "n3", "label": "R/153/SER/OG/76"},
            {"id": "n4", "label": "R/154/ASP/OD1/80"},
            {"id": "n5", "label": "R/200/GLY/CA/90"},
        ],
        "links": [
            {"source": "n1", "target": "n3", "type": "hbond", "distance": 2.9, "angle": 160.0},
            {"source": "n2", "target": "n4", "type": "ionic", "distance": "3.6"},
            {"source": "n3", "target": "n4", "type": "hbond", "distance": 3.1},
            {"source": "n1", "target": "n2", "type": "covalent", "distance": 1.4},
            {"source": "n2", "target": "n3", "type": "vdw", "distance": 4.5},
        ],
    }


@pytest.fixture
def residue_payload():
    return {
        "nodes": [
            {"id": "r1", "label": "A/1/LIG"},
            {"id": "r2", "label": "R/153/SER"},
            {"id": "r3", "label": "R/154/ASP"},
        ],
        "links": {
            "A-R": [
                {"source": "r1", "target": "r2", "type": "hbond"},
                {"source": "r1", "target": "r3", "type": "ionic"},
            ],
            "R-R": [
                {"source": "r2", "target": "r3", "type": "hbond"},
            ],
        },
    }


@pytest.fixture
def viewer_json_payload():
    return {
        "hbond": {
            "A-R": [["10:A.N:ALA:3", "20:B.O:GLY:7", 2.9, 0]],
        },
        "hydrophobic": {
            "A-R": [["11:A.CB:ALA:3", "25:B.CA:GLY:7", "3.8"]],
        },
    }

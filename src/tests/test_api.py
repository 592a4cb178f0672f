"""REST API tests using FastAPI's TestClient with a mocked backend."""
import httpx
import pytest
from fastapi.testclient import TestClient

from kinograph.api.endpoints import app, get_client
from kinograph.utils.config import FetchConfig
from kinograph.utils.data_client import InteractionDataClient

BACKEND = "http://backend.test"


@pytest.fixture
def api(atom_payload, residue_payload, viewer_json_payload):
    feeds = {
        "/atom_graph/1ABC_graph.json": atom_payload,
        "/res_graph/1ABC_graph.json": residue_payload,
        "/json/1ABC.json": viewer_json_payload,
        "/json/2XYZ.json": viewer_json_payload,
    }

    def handler(request):
        body = feeds.get(request.url.path)
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, json=body)

    app.dependency_overrides[get_client] = lambda: InteractionDataClient(
        FetchConfig(backend_url=BACKEND), transport=httpx.MockTransport(handler)
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_feed_proxies(api, atom_payload):
    r = api.get("/api/atom-graph/1ABC")
    assert r.status_code == 200
    assert r.json() == atom_payload
    assert api.get("/api/res-graph/1ABC").status_code == 200
    assert api.get("/api/json/1ABC").json()["hbond"]["A-R"][0][2] == 2.9


def test_proxy_upstream_error(api):
    r = api.get("/api/atom-graph/NOPE")
    assert r.status_code == 502


def test_proxy_without_backend():
    app.dependency_overrides[get_client] = lambda: InteractionDataClient(FetchConfig(backend_url=None))
    try:
        r = TestClient(app).get("/api/json/1ABC")
        assert r.status_code == 500
        assert "KINOGRAPH_BACKEND_URL" in r.json()["detail"]
    finally:
        app.dependency_overrides.clear()


def test_graph_view_defaults_to_all_present_types(api):
    r = api.get("/api/graph/1ABC")
    assert r.status_code == 200
    data = r.json()
    assert len(data["links"]) == 5
    assert data["active_types"] == ["covalent", "hbond", "ionic", "vdw"]
    assert set(data["layout"]["positions"]) == {n["id"] for n in data["nodes"]}
    assert data["type_counts"]["hbond"] == 2
    assert data["rows"][0]["Interaction Type"] == "hbond"
    assert data["role_colors"] == {"A": "#60a5fa", "R": "#f87171"}
    assert data["type_colors"]["hbond"] == "#2563eb"


def test_graph_view_filters(api):
    data = api.get("/api/graph/1ABC", params={"types": "hbond", "tiers": "A-R", "layout": "false"}).json()
    assert [(l["source"], l["target"]) for l in data["links"]] == [("n1", "n3")]
    assert data["layout"] is None
    assert data["selection"] == "@101 or @76"
    assert data["present_pairs"]["hbond"] == ["cross", "same_b"]


def test_graph_view_fails_closed(api):
    data = api.get("/api/graph/1ABC", params={"types": ""}).json()
    assert data["links"] == [] and data["nodes"] == []
    assert data["selection"] is None


def test_graph_view_bad_params(api):
    assert api.get("/api/graph/1ABC", params={"tiers": "zz-top"}).status_code == 400
    assert api.get("/api/graph/1ABC", params={"mode": "chain"}).status_code == 400
    assert api.get("/api/graph/1ABC", params={"proximity": -2}).status_code == 400


def test_residue_mode(api):
    data = api.get("/api/graph/1ABC", params={"mode": "residue", "layout": "false"}).json()
    assert len(data["links"]) == 3
    assert data["selection"] == ":A and resi 1 or :R and resi 153 or :R and resi 154"
    assert data["rows"][0]["Count"] == 1


def test_atom_mode_falls_back_to_viewer_json(api):
    data = api.get("/api/graph/2XYZ", params={"layout": "false"}).json()
    assert {l["type"] for l in data["links"]} == {"hbond", "hydrophobic"}


def test_selection_endpoint(api):
    data = api.get("/api/selection/1ABC", params={"types": "hbond,ionic"}).json()
    assert data["selection"] == "@101 or @102 or @76 or @80"
    assert data["fragments"] == 4
    assert data["pairs_by_type"] == {
        "hbond": [["@101", "@76"], ["@76", "@80"]],
        "ionic": [["@102", "@80"]],
    }


def test_selection_endpoint_residue_mode_has_no_atom_pairs(api):
    data = api.get("/api/selection/1ABC", params={"mode": "residue"}).json()
    assert data["selection"] == ":A and resi 1 or :R and resi 153 or :R and resi 154"
    assert data["pairs_by_type"] == {}

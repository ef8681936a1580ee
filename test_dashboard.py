"""
LinguaComic — Dashboard API Tests.

Drives the Flask JSON API with the offline fakes.

Usage:
    python test_dashboard.py
    pytest test_dashboard.py
"""

import io
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from fixtures import FakeAnalyzer, FakeImageGenerator
from dashboard.app import create_app
from linguacomic.config import AppConfig
from linguacomic.pipeline import LearningBundlePipeline


def make_client(analyzer=None, image_generator=None):
    config = AppConfig()
    pipeline = LearningBundlePipeline(
        analyzer=analyzer or FakeAnalyzer(),
        image_generator=image_generator or FakeImageGenerator(),
        config=config,
    )
    app = create_app(pipeline=pipeline, config=config, layout_seed=3)
    app.testing = True
    return app.test_client(), pipeline


def completed_client(**kwargs):
    client, pipeline = make_client(**kwargs)
    resp = client.post("/api/run", json={"text": "Water cycle"})
    assert resp.status_code == 200
    return client, pipeline


# ============================================================
# Test 1: Runs
# ============================================================

def test_state_and_health():
    client, _ = make_client()
    state = client.get("/api/state").get_json()
    assert state["state"] == "idle"
    assert state["document"] is None

    health = client.get("/api/health").get_json()
    assert health == {"healthy": True, "state": "idle"}

    print("  PASS: State and health")


def test_run_requires_input():
    client, pipeline = make_client()
    resp = client.post("/api/run", json={"text": "   "})
    assert resp.status_code == 400
    assert pipeline.session.run_id == 0

    resp = client.post(
        "/api/run",
        data={"image": (io.BytesIO(b"not an image"), "page.png")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400

    print("  PASS: Run rejects empty input")


def test_run_completes():
    client, _ = completed_client()
    state = client.get("/api/state").get_json()
    assert state["state"] == "complete"
    assert len(state["document"]["comicPanels"]) == 4
    assert state["illustrated"] == {"panels": 4, "vocabulary": 3}

    # A second run needs a reset first
    resp = client.post("/api/run", json={"text": "Again"})
    assert resp.status_code == 409

    print("  PASS: JSON run completes")


def test_run_analysis_failure():
    client, _ = make_client(analyzer=FakeAnalyzer(fail=True))
    body = client.post("/api/run", json={"text": "Water cycle"}).get_json()
    assert body["success"] is False
    assert body["state"] == "error"
    assert body["error"]
    assert body["document"] is None

    assert client.post("/api/reset").status_code == 200
    assert client.get("/api/state").get_json()["state"] == "idle"
    assert client.post("/api/reset").status_code == 409

    print("  PASS: Analysis failure surfaces as error state")


def test_form_run_with_photo():
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (16, 16), color=(10, 120, 200)).save(buf, format="PNG")

    analyzer = FakeAnalyzer()
    client, _ = make_client(analyzer=analyzer)
    resp = client.post(
        "/api/run",
        data={"image": (io.BytesIO(buf.getvalue()), "page.png"), "vocab_criteria": "nouns"},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert resp.get_json()["success"] is True

    call = analyzer.calls[0]
    assert call["source_image"] == (buf.getvalue(), "image/png")
    assert call["vocab_criteria"] == "nouns"

    print("  PASS: Photo upload run")


# ============================================================
# Test 2: Panels
# ============================================================

def test_panel_edit_and_regenerate():
    client, pipeline = completed_client()

    body = client.post("/api/panels/2", json={"caption": "Steam rises."}).get_json()
    assert body["success"] is True
    assert body["document"]["comicPanels"][1]["caption"] == "Steam rises."

    body = client.post("/api/panels/99", json={"caption": "x"}).get_json()
    assert body["success"] is False

    old_image = pipeline.document.find_panel(1).image
    body = client.post("/api/panels/1/regenerate").get_json()
    assert body["success"] is True
    assert body["panel"]["image"] != old_image

    print("  PASS: Panel edit and regenerate")


def test_panel_edit_requires_complete():
    client, _ = make_client()
    assert client.post("/api/panels/1", json={"caption": "x"}).status_code == 409
    body = client.post("/api/panels/1/regenerate").get_json()
    assert body["success"] is False

    print("  PASS: Panel endpoints need a completed run")


# ============================================================
# Test 3: Graph
# ============================================================

def test_graph_unavailable_before_run():
    client, _ = make_client()
    assert client.get("/api/graph").status_code == 409

    print("  PASS: Graph needs a completed run")


def test_graph_layout_and_drag():
    client, _ = completed_client()

    data = client.get("/api/graph?ticks=50").get_json()
    assert data["mode"] == "simulated"
    assert data["layout"]["ticks"] == 50
    assert len(data["layout"]["nodes"]) == 5

    body = client.post("/api/graph/drag", json={"action": "start", "id": "rain"}).get_json()
    assert body["success"] is True
    body = client.post("/api/graph/drag", json={"action": "move", "id": "rain", "x": 10, "y": 20}).get_json()
    assert body["success"] is True

    data = client.get("/api/graph?ticks=3").get_json()
    rain = next(n for n in data["layout"]["nodes"] if n["id"] == "rain")
    assert (rain["x"], rain["y"]) == (10.0, 20.0)

    body = client.post("/api/graph/drag", json={"action": "end", "id": "rain"}).get_json()
    assert body["success"] is True
    assert client.post("/api/graph/drag", json={"action": "spin", "id": "rain"}).status_code == 400

    print("  PASS: Graph layout and drag")


def test_graph_edit_and_save():
    client, pipeline = completed_client()

    data = client.post("/api/graph/edit").get_json()
    assert data["mode"] == "editing"
    assert client.post("/api/graph/edit").status_code == 409
    assert client.post("/api/graph/drag", json={"action": "start", "id": "sea"}).status_code == 409

    data = client.post("/api/graph/edit/add_node").get_json()
    assert data["scratch"]["nodes"][-1]["id"] == "n6"

    data = client.post("/api/graph/edit/update_node", json={"index": 5, "fields": {"label": "Lake"}}).get_json()
    assert data["scratch"]["nodes"][5]["label"] == "Lake"

    data = client.post("/api/graph/edit/add_link").get_json()
    data = client.post(
        "/api/graph/edit/update_link",
        json={"index": 4, "fields": {"targetId": "n6", "relationship": "fills"}},
    ).get_json()
    assert data["scratch"]["links"][4] == {"sourceId": "sea", "targetId": "n6", "relationship": "fills"}

    assert client.post("/api/graph/edit/update_node", json={"index": 0, "fields": {"colour": "red"}}).status_code == 400
    resp = client.post("/api/graph/edit/update_node", json={"index": 0, "fields": {"label": "CHANGED", "group": "x"}})
    assert resp.status_code == 400
    assert client.get("/api/graph").get_json()["scratch"]["nodes"][0]["label"] == "Sea"
    assert client.post("/api/graph/edit/remove_node", json={"index": 50}).status_code == 400
    assert client.post("/api/graph/edit/explode").status_code == 404

    # Document untouched until save
    assert len(pipeline.document.graph.nodes) == 5

    data = client.post("/api/graph/save").get_json()
    assert data["mode"] == "simulated"
    assert len(pipeline.document.graph.nodes) == 6
    assert len(data["layout"]["nodes"]) == 6

    print("  PASS: Graph edit and save")


def test_graph_edit_cancel():
    client, pipeline = completed_client()
    before = pipeline.document.graph

    client.post("/api/graph/edit")
    client.post("/api/graph/edit/remove_node", json={"index": 0})
    data = client.post("/api/graph/cancel").get_json()

    assert data["mode"] == "simulated"
    assert pipeline.document.graph is before
    assert len(data["graph"]["nodes"]) == 5
    assert client.post("/api/graph/cancel").status_code == 409

    print("  PASS: Graph edit cancel")


def test_writes_wait_for_each_other():
    """A panel edit issued mid-redraw runs after the redraw has landed."""
    import threading
    import time

    generator = FakeImageGenerator()
    client, pipeline = completed_client(image_generator=generator)
    generator.delays = {"PANEL-1": 0.3}

    redraw = {}

    def regenerate():
        other = client.application.test_client()
        redraw["body"] = other.post("/api/panels/1/regenerate").get_json()

    worker = threading.Thread(target=regenerate)
    worker.start()
    time.sleep(0.1)
    edit = client.post("/api/panels/1", json={"caption": "Hot sun."}).get_json()
    worker.join()

    assert redraw["body"]["success"] is True
    new_image = redraw["body"]["panel"]["image"]
    # The edit saw the finished redraw, not the panel mid-update
    assert edit["document"]["comicPanels"][0]["image"] == new_image
    assert edit["document"]["comicPanels"][0]["caption"] == "Hot sun."
    assert pipeline.document.find_panel(1).image == new_image

    print("  PASS: State-changing views are serialized")


def test_reset_clears_graph():
    client, _ = completed_client()
    client.get("/api/graph?ticks=5")
    assert client.post("/api/reset").status_code == 200
    assert client.get("/api/graph").status_code == 409

    client.post("/api/run", json={"text": "Water cycle again"})
    data = client.get("/api/graph").get_json()
    assert data["layout"]["ticks"] == 0

    print("  PASS: Reset clears the graph view")


# ============================================================
# Runner
# ============================================================

def main():
    """Run tests."""
    tests = {
        name: func for name, func in globals().items()
        if name.startswith("test_") and callable(func)
    }

    passed = 0
    failed = 0

    print("\nDashboard API Tests")
    print("=" * 50)

    for name, func in tests.items():
        print(f"\n{name}:")
        try:
            func()
            passed += 1
        except Exception as e:
            print(f"  FAIL: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print("\n" + "=" * 50)
    print(f"Results: {passed} passed, {failed} failed")

    if failed > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()

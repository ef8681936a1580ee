"""
LinguaComic — Concept Graph Tests.

Force layout physics, dragging, and the edit / save / cancel cycle.
No API keys needed.

Usage:
    python test_graph_model.py
    python test_graph_model.py test_drag_pin_and_release
    pytest test_graph_model.py
"""

import itertools
import math
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import numpy as np

from fixtures import water_cycle_document
from linguacomic.errors import GraphModeError
from linguacomic.graph_model import GraphMode, GraphModel
from linguacomic.layout import NODE_RADIUS, ForceLayout
from linguacomic.models import Graph, Link, Node


def settled_model(seed=7):
    model = GraphModel(water_cycle_document(), seed=seed)
    model.layout.run(max_ticks=400)
    return model


def min_pairwise_distance(layout):
    points = layout.positions
    return min(
        float(np.linalg.norm(points[a] - points[b]))
        for a, b in itertools.combinations(range(len(points)), 2)
    )


# ============================================================
# Test 1: Layout physics
# ============================================================

def test_initial_placement():
    """Nodes start on a spiral around the viewport center, not stacked."""
    layout = ForceLayout(water_cycle_document().graph, width=800, height=500)
    assert layout.positions.shape == (5, 2)
    assert layout.alpha == 1.0 and not layout.is_settled
    assert min_pairwise_distance(layout) > 0
    spread = np.abs(layout.positions - layout.center).max()
    assert spread < 50

    print("  PASS: Initial spiral placement")


def test_layout_settles():
    """The water cycle graph cools, spreads out and stays centered."""
    model = settled_model()
    layout = model.layout

    assert layout.is_settled
    assert layout.ticks <= 400
    assert min_pairwise_distance(layout) >= 2 * NODE_RADIUS
    centroid = layout.positions.mean(axis=0)
    assert np.allclose(centroid, [400, 250], atol=1.0), centroid

    # Linked nodes end up roughly a spring length apart
    for end in layout.link_endpoints():
        (sx, sy), (tx, ty) = end
        assert 60 < math.hypot(tx - sx, ty - sy) < 240

    print(f"  PASS: Settled after {layout.ticks} ticks, min distance {min_pairwise_distance(layout):.1f}")


def test_settled_layout_is_quiet():
    model = settled_model()
    before = model.layout.positions.copy()
    model.step(5)
    assert np.abs(model.layout.positions - before).max() < 1.0
    assert model.layout.kinetic_energy() < 1.0

    print("  PASS: Settled layout barely moves")


def test_empty_and_single_node():
    empty = ForceLayout(Graph())
    empty.run()
    assert empty.node_positions() == []
    assert empty.link_endpoints() == []

    single = ForceLayout(Graph(nodes=[Node(id="a", label="A")]), width=200, height=100)
    single.run(max_ticks=400)
    assert np.allclose(single.position_of("a"), (100, 50), atol=1e-6)

    print("  PASS: Empty and single-node graphs")


# ============================================================
# Test 2: Dragging
# ============================================================

def test_drag_pin_and_release():
    """A dragged node sits exactly where the pointer is, then rejoins the sim."""
    model = settled_model()
    layout = model.layout

    assert model.drag_start("clouds")
    assert layout.alpha_target > 0
    assert layout.is_pinned("clouds")

    assert model.drag_to("clouds", 700.0, 80.0)
    model.step(10)
    assert layout.position_of("clouds") == (700.0, 80.0)
    assert not layout.is_settled

    assert model.drag_end("clouds")
    assert not layout.is_pinned("clouds")
    assert layout.alpha_target == 0.0

    model.step(1)
    assert layout.position_of("clouds") != (700.0, 80.0)
    layout.run(max_ticks=400)
    assert layout.is_settled

    print("  PASS: Drag pins, release frees")


def test_drag_keeps_others_moving():
    """While one node is held, the rest keep responding to forces."""
    model = settled_model()
    layout = model.layout
    others_before = {nid: layout.position_of(nid) for nid in ("sea", "rain", "river")}

    model.drag_start("evaporation")
    model.drag_to("evaporation", 50.0, 50.0)
    model.step(20)

    moved = [layout.position_of(nid) != pos for nid, pos in others_before.items()]
    assert any(moved)
    assert layout.position_of("evaporation") == (50.0, 50.0)

    print("  PASS: Other nodes move during a drag")


def test_drag_unknown_node():
    model = settled_model()
    assert model.drag_start("ghost") is False
    assert model.drag_to("sea", 1.0, 1.0) is False  # never started
    assert model.drag_end("sea") is False

    print("  PASS: Drag ignores unknown or idle nodes")


# ============================================================
# Test 3: Editing
# ============================================================

def test_cancel_leaves_graph_untouched():
    """Edits then cancel: same graph object, same contents, fresh layout."""
    document = water_cycle_document()
    model = GraphModel(document)
    original = document.graph
    before = original.to_dict()
    model.layout.run(max_ticks=50)

    model.begin_edit()
    assert model.mode == GraphMode.EDITING
    model.add_node()
    model.remove_node(0)
    model.update_link(0, relationship="changed")
    model.cancel()

    assert model.mode == GraphMode.SIMULATED
    assert document.graph is original
    assert document.graph.to_dict() == before

    # Layout restarts from initial placement
    fresh = ForceLayout(original)
    assert model.layout.ticks == 0
    assert np.allclose(model.layout.positions, fresh.positions)

    print("  PASS: Cancel discards edits")


def test_save_installs_scratch():
    document = water_cycle_document()
    model = GraphModel(document)
    old_layout = model.layout

    scratch = model.begin_edit()
    node = model.add_node()
    model.update_node(len(scratch.nodes) - 1, label="Lake", group="3")
    assert document.graph is not scratch
    assert len(document.graph.nodes) == 5

    saved = model.save()
    assert saved is scratch
    assert document.graph is scratch
    assert document.graph.nodes[-1] == Node(id=node.id, label="Lake", group=3)
    assert model.layout is not old_layout
    assert len(model.layout.node_ids) == 6

    print("  PASS: Save swaps in the scratch graph")


def test_dangling_link_survives_save():
    """Removing a node keeps its links; they dangle and are not drawn."""
    document = water_cycle_document()
    model = GraphModel(document)

    model.begin_edit()
    model.remove_node(4)  # river
    model.save()

    graph = document.graph
    assert "river" not in graph.node_ids()
    assert len(graph.links) == 4
    assert graph.dangling_links() == [graph.links[3]]

    layout = model.layout
    layout.run(max_ticks=400)
    ends = layout.link_endpoints()
    assert ends[3] is None
    assert all(end is not None for end in ends[:3])
    assert layout.to_dict()["links"][3] is None

    print("  PASS: Dangling link persists and is skipped by layout")


def test_fresh_node_ids():
    model = GraphModel(water_cycle_document())
    model.begin_edit()
    first = model.add_node()
    second = model.add_node()
    assert first.id == "n6"
    assert second.id == "n7"
    assert first.label == "New" and first.group == 1

    # Skips ids already taken
    model.update_node(0, id="n8")
    third = model.add_node()
    assert third.id == "n9"
    assert len(model.scratch.node_ids()) == len(model.scratch.nodes)

    print("  PASS: New nodes get unused ids")


def test_add_link_defaults():
    model = GraphModel(water_cycle_document())
    model.begin_edit()
    link = model.add_link()
    assert link == Link(source_id="sea", target_id="", relationship="")

    empty = GraphModel(water_cycle_document())
    empty.begin_edit()
    while empty.scratch.nodes:
        empty.remove_node(0)
    assert empty.add_link().source_id == ""

    print("  PASS: add_link defaults")


def test_update_rejects_unknown_fields():
    model = GraphModel(water_cycle_document())
    model.begin_edit()
    try:
        model.update_node(0, colour="red")
    except KeyError:
        pass
    else:
        raise AssertionError("Expected KeyError")
    assert model.scratch.nodes[0].label == "Sea"

    model.update_link(1, target_id="rain", relationship=None)
    assert model.scratch.links[1] == Link(source_id="evaporation", target_id="rain", relationship="")

    print("  PASS: Field updates validated")


def test_failed_update_changes_nothing():
    """A bad value anywhere in the patch leaves the whole node as it was."""
    model = GraphModel(water_cycle_document())
    model.begin_edit()
    before = Node(**vars(model.scratch.nodes[0]))

    try:
        model.update_node(0, label="CHANGED", group="not-a-number")
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError")
    assert model.scratch.nodes[0] == before
    assert model.scratch.nodes[0].label == "Sea"

    print("  PASS: Failed update is all-or-nothing")


def test_mode_errors():
    model = GraphModel(water_cycle_document())
    for call in (model.add_node, model.add_link, model.save, model.cancel):
        try:
            call()
        except GraphModeError:
            pass
        else:
            raise AssertionError(f"{call.__name__} should need editing mode")

    model.begin_edit()
    for call in (lambda: model.layout, model.begin_edit, lambda: model.drag_start("sea")):
        try:
            call()
        except GraphModeError:
            pass
        else:
            raise AssertionError("Should need simulated mode")

    assert model.to_dict()["layout"] is None
    assert model.to_dict()["scratch"]["nodes"][0]["id"] == "sea"

    print("  PASS: Mode errors")


def test_attach_rebuilds_layout():
    """A new Document, or a replaced graph, starts a fresh layout."""
    model = GraphModel(water_cycle_document())
    model.step(30)
    first = model.layout

    model.attach(water_cycle_document())
    assert model.layout is not first
    assert model.layout.ticks == 0

    second = model.layout
    model.document.graph = water_cycle_document().graph
    assert model.layout is not second

    print("  PASS: Layout follows the Document's graph")


def test_to_dict_steps():
    model = GraphModel(water_cycle_document())
    data = model.to_dict(ticks=10)
    assert data["mode"] == "simulated"
    assert data["layout"]["ticks"] == 10
    assert len(data["layout"]["nodes"]) == 5
    assert data["graph"]["links"][0]["sourceId"] == "sea"

    print("  PASS: Graph surface")


# ============================================================
# Runner
# ============================================================

def main():
    """Run tests."""
    specific = sys.argv[1] if len(sys.argv) > 1 else None

    tests = {
        name: func for name, func in globals().items()
        if name.startswith("test_") and callable(func)
    }

    if specific:
        if specific not in tests:
            print(f"Unknown test: {specific}")
            print(f"Available: {', '.join(tests.keys())}")
            sys.exit(1)
        tests = {specific: tests[specific]}

    passed = 0
    failed = 0

    print("\nConcept Graph Tests")
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

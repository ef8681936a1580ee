"""
LinguaComic Dashboard - Flask JSON API

Single-session workflow surface:
- Start a run (text and/or textbook photo + optional vocab criteria)
- Live state indicator (idle / analyzing / synthesizing_images / complete / error)
- Per-panel text edits and image redraws once complete
- Concept graph: layout stepping, dragging, edit / save / cancel

Rendering is left to the client; every endpoint returns JSON.
"""

import asyncio
import functools
import logging
import threading
from typing import Optional

from flask import Flask, jsonify, request
from dotenv import load_dotenv

from linguacomic.config import AppConfig, load_config
from linguacomic.errors import GraphModeError
from linguacomic.graph_model import GraphModel
from linguacomic.models import PipelineState
from linguacomic.pipeline import LearningBundlePipeline, has_input
from linguacomic.sources import load_source_image

load_dotenv()

logger = logging.getLogger(__name__)

GRAPH_EDIT_OPS = {"add_node", "remove_node", "update_node", "add_link", "remove_link", "update_link"}

# Dashboard field names → model field names for link edits
LINK_FIELD_ALIASES = {"sourceId": "source_id", "targetId": "target_id"}


def create_app(
    pipeline: Optional[LearningBundlePipeline] = None,
    config: Optional[AppConfig] = None,
    layout_seed: Optional[int] = None,
) -> Flask:
    """Build the dashboard around one pipeline session."""
    config = config or load_config()
    pipeline = pipeline or LearningBundlePipeline(config=config)

    app = Flask(__name__)
    app.config["PIPELINE"] = pipeline

    run_lock = threading.Lock()
    # Held by every view that changes the session or the graph
    state_lock = threading.Lock()
    graph_holder: dict = {"model": None}

    def current_graph() -> Optional[GraphModel]:
        """Graph model for the live Document, or None until a run completes."""
        if pipeline.state != PipelineState.COMPLETE or pipeline.document is None:
            return None
        model = graph_holder["model"]
        if model is None:
            model = GraphModel(
                pipeline.document,
                width=config.graph_width,
                height=config.graph_height,
                seed=layout_seed,
            )
            graph_holder["model"] = model
        elif model.document is not pipeline.document:
            model.attach(pipeline.document)
        return model

    def graph_unavailable():
        return jsonify({"success": False, "error": "No completed document"}), 409

    def serialized(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            with state_lock:
                return view(*args, **kwargs)
        return wrapper

    # ============== PIPELINE ==============

    @app.route("/api/state")
    def api_state():
        return jsonify(pipeline.snapshot())

    @app.route("/api/run", methods=["POST"])
    def api_run():
        """Start a run. Blocks until the run reaches complete or error."""
        data = request.get_json(silent=True) or {}
        text = request.form.get("text", data.get("text", "")) or ""
        vocab_criteria = request.form.get("vocab_criteria", data.get("vocab_criteria", "")) or ""

        image_bytes = None
        mime_type = None
        upload = request.files.get("image")
        if upload is not None:
            try:
                image_bytes, mime_type = load_source_image(upload.read())
            except ValueError as e:
                return jsonify({"success": False, "error": str(e)}), 400

        if not has_input(text, image_bytes):
            return jsonify({"success": False, "error": "Provide text or an image"}), 400

        if not run_lock.acquire(blocking=False):
            return jsonify({"success": False, "error": "A run is already in progress"}), 409
        try:
            with state_lock:
                if pipeline.state not in (PipelineState.IDLE, PipelineState.ERROR):
                    return jsonify({"success": False, "error": f"Pipeline is {pipeline.state.value}"}), 409
                asyncio.run(pipeline.run(
                    text=text,
                    image_bytes=image_bytes,
                    image_mime_type=mime_type,
                    vocab_criteria=vocab_criteria,
                ))
        finally:
            run_lock.release()

        snapshot = pipeline.snapshot()
        snapshot["success"] = pipeline.state == PipelineState.COMPLETE
        return jsonify(snapshot)

    @app.route("/api/reset", methods=["POST"])
    @serialized
    def api_reset():
        if not pipeline.reset():
            return jsonify({"success": False, "error": f"Cannot reset while {pipeline.state.value}"}), 409
        graph_holder["model"] = None
        return jsonify({"success": True, "state": pipeline.state.value})

    # ============== PANELS ==============

    @app.route("/api/panels/<int:panel_id>", methods=["POST"])
    @serialized
    def api_update_panel(panel_id):
        if pipeline.state != PipelineState.COMPLETE:
            return jsonify({"success": False, "error": f"Pipeline is {pipeline.state.value}"}), 409
        data = request.get_json(silent=True) or {}
        updated = pipeline.update_panel_text(panel_id, data)
        return jsonify({"success": updated, "document": pipeline.snapshot()["document"]})

    @app.route("/api/panels/<int:panel_id>/regenerate", methods=["POST"])
    @serialized
    def api_regenerate_panel(panel_id):
        redrawn = asyncio.run(pipeline.regenerate_image(panel_id))
        panel = pipeline.document.find_panel(panel_id) if pipeline.document else None
        return jsonify({
            "success": redrawn,
            "panel": panel.to_dict() if panel else None,
        })

    # ============== GRAPH ==============

    @app.route("/api/graph")
    @serialized
    def api_graph():
        model = current_graph()
        if model is None:
            return graph_unavailable()
        ticks = request.args.get("ticks", 0, type=int)
        return jsonify(model.to_dict(ticks=max(0, ticks)))

    @app.route("/api/graph/edit", methods=["POST"])
    @serialized
    def api_graph_edit():
        model = current_graph()
        if model is None:
            return graph_unavailable()
        try:
            model.begin_edit()
        except GraphModeError as e:
            return jsonify({"success": False, "error": str(e)}), 409
        return jsonify(model.to_dict())

    @app.route("/api/graph/edit/<op>", methods=["POST"])
    @serialized
    def api_graph_edit_op(op):
        model = current_graph()
        if model is None:
            return graph_unavailable()
        if op not in GRAPH_EDIT_OPS:
            return jsonify({"success": False, "error": f"Unknown operation: {op}"}), 404

        data = request.get_json(silent=True) or {}
        fields = {LINK_FIELD_ALIASES.get(k, k): v for k, v in (data.get("fields") or {}).items()}
        try:
            if op == "add_node":
                model.add_node()
            elif op == "add_link":
                model.add_link()
            elif op == "remove_node":
                model.remove_node(int(data["index"]))
            elif op == "remove_link":
                model.remove_link(int(data["index"]))
            elif op == "update_node":
                model.update_node(int(data["index"]), **fields)
            elif op == "update_link":
                model.update_link(int(data["index"]), **fields)
        except GraphModeError as e:
            return jsonify({"success": False, "error": str(e)}), 409
        except (KeyError, IndexError, ValueError, TypeError) as e:
            return jsonify({"success": False, "error": str(e)}), 400
        return jsonify(model.to_dict())

    @app.route("/api/graph/save", methods=["POST"])
    @serialized
    def api_graph_save():
        model = current_graph()
        if model is None:
            return graph_unavailable()
        try:
            model.save()
        except GraphModeError as e:
            return jsonify({"success": False, "error": str(e)}), 409
        return jsonify(model.to_dict())

    @app.route("/api/graph/cancel", methods=["POST"])
    @serialized
    def api_graph_cancel():
        model = current_graph()
        if model is None:
            return graph_unavailable()
        try:
            model.cancel()
        except GraphModeError as e:
            return jsonify({"success": False, "error": str(e)}), 409
        return jsonify(model.to_dict())

    @app.route("/api/graph/drag", methods=["POST"])
    @serialized
    def api_graph_drag():
        model = current_graph()
        if model is None:
            return graph_unavailable()
        data = request.get_json(silent=True) or {}
        action = data.get("action")
        node_id = str(data.get("id", ""))
        try:
            if action == "start":
                ok = model.drag_start(node_id)
            elif action == "move":
                ok = model.drag_to(node_id, float(data["x"]), float(data["y"]))
            elif action == "end":
                ok = model.drag_end(node_id)
            else:
                return jsonify({"success": False, "error": f"Unknown drag action: {action}"}), 400
        except GraphModeError as e:
            return jsonify({"success": False, "error": str(e)}), 409
        except (KeyError, ValueError, TypeError) as e:
            return jsonify({"success": False, "error": str(e)}), 400
        return jsonify({"success": ok, "position": model.layout.position_of(node_id)})

    # ============== HEALTH ==============

    @app.route("/api/health")
    def api_health():
        return jsonify({"healthy": True, "state": pipeline.state.value})

    return app


# ============== MAIN ==============

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    cfg = load_config()
    create_app(config=cfg).run(host=cfg.dashboard_host, port=cfg.dashboard_port, debug=True)

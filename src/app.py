# src/app.py

"""
Flask API for the scheduling simulator.
A front end polls this server to:
- Get state (processes, memory blocks, ready queue)
- Admit processes
- Drain the worker pool / reset the run
"""

from flask import Flask, jsonify, request
import os

from src.schedsim import config
from src.schedsim.controller import ProcessSpec, SimulationController
from src.schedsim.core import SimulationError

app = Flask(__name__)

# single controller instance
controller = SimulationController()


def init_demo_state():
    """
    Reset the simulator, admit the five reference processes
    and start draining the pool in the background.
    """
    controller.reset()
    results = [controller.add_process(spec) for spec in config.DEMO_PROCESSES]
    controller.start()
    return results


# Basic state endpoints
@app.route("/api/state", methods=["GET"])
def api_state():
    return jsonify(controller.get_state_snapshot())


@app.route("/api/memory", methods=["GET"])
def api_memory():
    return jsonify({"blocks": controller.allocator.snapshot()})


@app.route("/api/process/<int:pid>", methods=["GET"])
def api_process(pid):
    p = controller.get_process(pid)
    if p is None:
        return jsonify({"ok": False, "error": f"Process id {pid} not found."}), 404
    return jsonify({"ok": True, "process": p.to_dict()})


# Control endpoints
@app.route("/api/add_process", methods=["POST"])
def api_add_process():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    try:
        spec = ProcessSpec.from_dict(data)
        p, admitted = controller.add_process(spec)
    except ValueError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except SimulationError as e:
        return jsonify({"ok": False, "error": str(e)}), 409
    return jsonify({"ok": True, "admitted": admitted, "process": p.to_dict()})


@app.route("/api/execute", methods=["POST"])
def api_execute():
    controller.start()
    return jsonify({"ok": True})


@app.route("/api/reset", methods=["POST"])
def api_reset():
    controller.reset()
    return jsonify({"ok": True})


@app.route("/api/init_demo", methods=["POST"])
def api_init_demo():
    """
    Initialize the reference scenario:
    - Reset everything
    - Admit the demo processes
    - Start draining
    """
    results = init_demo_state()
    return jsonify({
        "ok": True,
        "admitted": [p.id for p, ok in results if ok],
        "rejected": [p.id for p, ok in results if not ok],
    })


if __name__ == "__main__":
    config.configure_logging()
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=True)

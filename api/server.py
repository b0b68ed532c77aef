"""
Admin API server for the allocation engine.

Every request opens its own Storage connection and closes it afterwards.
Writes serialize through SQLite's write lock (see storage/db.py), so
concurrent allocation runs cannot both pass the same capacity check.

Run: python main.py serve
"""

from pathlib import Path

from flask import Flask, jsonify, request

from allocation.adapter import create_adapter, run_connection_check
from allocation.engine import AllocationEngine, AllocationError, NotFoundError
from config.settings import Config
from llm.factory import available_providers, provider_status, resolve_provider_name
from llm.provider import LLMConfigError
from models import AllocationStatus
from storage.db import Storage


def _parse_int(value, default: int | None, name: str) -> tuple[int | None, str | None]:
    """Parse an integer param. Returns (value, error_message)."""
    if value is None:
        return default, None
    if isinstance(value, bool):
        return default, f"Invalid value for '{name}': expected integer, got '{value}'"
    try:
        return int(value), None
    except (ValueError, TypeError):
        return default, f"Invalid value for '{name}': expected integer, got '{value}'"


def create_app(db_path: Path, config: Config | None = None, adapter_factory=None):
    """
    Args:
        db_path: SQLite database file.
        config: Defaults to the environment-backed Config.
        adapter_factory: callable(config, provider_name) -> ProviderAdapter.
            Defaults to allocation.adapter.create_adapter.
    """
    app = Flask(__name__)
    config = config or Config()
    make_adapter = adapter_factory or create_adapter

    # ── CORS for development ──
    @app.after_request
    def add_cors(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
        return response

    def get_storage() -> Storage:
        return Storage(db_path)

    @app.errorhandler(NotFoundError)
    def not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(AllocationError)
    def rule_violation(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(LLMConfigError)
    def config_error(e):
        return jsonify({"error": str(e)}), 400

    # ── API Routes ──

    @app.route("/api/statistics")
    def statistics():
        storage = get_storage()
        try:
            return jsonify(AllocationEngine(storage, config).get_statistics())
        finally:
            storage.close()

    @app.route("/api/providers")
    def providers():
        return jsonify({
            "providers": available_providers(),
            "default": config.llm_default_provider,
            "status": provider_status(config),
        })

    @app.route("/api/providers/<provider>/test", methods=["POST"])
    def test_provider(provider):
        try:
            name = resolve_provider_name(config, provider)
            adapter = make_adapter(config, name)
        except LLMConfigError as e:
            return jsonify({"success": False, "message": f"Connection test failed: {e}"})
        return jsonify(run_connection_check(adapter))

    @app.route("/api/allocations/generate", methods=["POST"])
    def generate_allocations():
        body = request.get_json(silent=True) or {}
        provider = body.get("provider")
        name = resolve_provider_name(config, provider)
        adapter = make_adapter(config, name)

        storage = get_storage()
        try:
            result = AllocationEngine(storage, config, adapter=adapter).generate_allocations()
        finally:
            storage.close()

        payload = result.to_dict()
        payload["message"] = f"Generated {len(result.allocations)} allocations using {name}."
        if result.errors:
            payload["message"] += f" {len(result.errors)} errors occurred."
        return jsonify(payload)

    @app.route("/api/allocations")
    def list_allocations():
        status_param = request.args.get("status")
        status = None
        if status_param:
            try:
                status = AllocationStatus(status_param)
            except ValueError:
                return jsonify({"error": f"Invalid status: '{status_param}'"}), 400

        storage = get_storage()
        try:
            allocations = AllocationEngine(storage, config).list_allocations(status)
            return jsonify({
                "allocations": [a.to_dict() for a in allocations],
                "total": len(allocations),
            })
        finally:
            storage.close()

    @app.route("/api/allocations/<int:allocation_id>")
    def get_allocation(allocation_id):
        storage = get_storage()
        try:
            return jsonify(AllocationEngine(storage, config).get_allocation(allocation_id).to_dict())
        finally:
            storage.close()

    @app.route("/api/allocations/<int:allocation_id>", methods=["DELETE"])
    def delete_allocation(allocation_id):
        storage = get_storage()
        try:
            AllocationEngine(storage, config).delete_allocation(allocation_id)
            return jsonify({"deleted": allocation_id})
        finally:
            storage.close()

    @app.route("/api/allocations/<int:allocation_id>/approve", methods=["POST"])
    def approve_allocation(allocation_id):
        body = request.get_json(silent=True) or {}
        storage = get_storage()
        try:
            allocation = AllocationEngine(storage, config).approve_allocation(
                allocation_id, admin_notes=body.get("admin_notes"),
            )
            return jsonify(allocation.to_dict())
        finally:
            storage.close()

    @app.route("/api/allocations/<int:allocation_id>/reject", methods=["POST"])
    def reject_allocation(allocation_id):
        body = request.get_json(silent=True) or {}
        reason = body.get("reason") or body.get("rejection_reason") or ""
        storage = get_storage()
        try:
            allocation = AllocationEngine(storage, config).reject_allocation(allocation_id, str(reason))
            return jsonify(allocation.to_dict())
        finally:
            storage.close()

    @app.route("/api/allocations/<int:allocation_id>/reallocate", methods=["POST"])
    def reallocate(allocation_id):
        body = request.get_json(silent=True) or {}
        supervisor_id, err = _parse_int(body.get("supervisor_id"), None, "supervisor_id")
        if err:
            return jsonify({"error": err}), 400
        if supervisor_id is None:
            return jsonify({"error": "supervisor_id is required"}), 400

        storage = get_storage()
        try:
            allocation = AllocationEngine(storage, config).reallocate_project(allocation_id, supervisor_id)
            return jsonify(allocation.to_dict())
        finally:
            storage.close()

    @app.route("/api/projects/<int:project_id>/allocate", methods=["POST"])
    def allocate_project(project_id):
        storage = get_storage()
        try:
            allocation = AllocationEngine(storage, config).allocate_project(project_id)
            return jsonify(allocation.to_dict()), 201
        finally:
            storage.close()

    @app.route("/")
    def index():
        return jsonify({
            "message": "project allocation API",
            "endpoints": [
                "GET /api/statistics",
                "GET /api/providers",
                "POST /api/providers/<provider>/test",
                "POST /api/allocations/generate",
                "GET /api/allocations",
                "GET /api/allocations/<id>",
                "DELETE /api/allocations/<id>",
                "POST /api/allocations/<id>/approve",
                "POST /api/allocations/<id>/reject",
                "POST /api/allocations/<id>/reallocate",
                "POST /api/projects/<id>/allocate",
            ],
        })

    return app

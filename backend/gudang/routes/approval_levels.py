# backend/gudang/routes/approval_levels.py
"""
Approval chain administration.

- GET  /api/divisions
- POST /api/divisions
- GET  /api/approval-levels            (?division_id=)
- POST /api/approval-levels
- PUT  /api/approval-levels/<id>
- DELETE /api/approval-levels/<id>

Levels with delivery notes currently waiting on them cannot be changed (409).
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import approval_level_service
from ..validation import ConflictError, ValidationError, parse_int, require_json_object
from ..decorators import require_service_key


approval_levels_bp = Blueprint("approval_levels", __name__, url_prefix="/api")


@approval_levels_bp.get("/divisions")
@require_service_key
def list_divisions_route():
    divisions = approval_level_service.list_divisions()
    return jsonify({"divisions": [d.to_dict() for d in divisions]}), 200


@approval_levels_bp.post("/divisions")
@require_service_key
def create_division_route():
    try:
        data = require_json_object(request.get_json(silent=True))
        division = approval_level_service.create_division(data.get("name"), data.get("description"))
        return jsonify({"division": division.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create division")
        return jsonify({"error": "Internal server error"}), 500


@approval_levels_bp.get("/approval-levels")
@require_service_key
def list_levels_route():
    try:
        division_id = request.args.get("division_id")
        levels = approval_level_service.list_levels(
            parse_int(division_id, "division_id") if division_id else None
        )
        return jsonify({"approval_levels": [level.to_dict() for level in levels]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@approval_levels_bp.post("/approval-levels")
@require_service_key
def create_level_route():
    """
    Request body:
    {
        "division_id": 1,
        "name": "Supervisor",
        "email": "supervisor@example.com",
        "level_order": 1        (optional, defaults to last + 1)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        level = approval_level_service.create_level(data)
        return jsonify({"approval_level": level.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create approval level")
        return jsonify({"error": "Internal server error"}), 500


@approval_levels_bp.put("/approval-levels/<int:level_id>")
@require_service_key
def update_level_route(level_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        level = approval_level_service.update_level(level_id, data)
        return jsonify({"approval_level": level.to_dict()}), 200
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update approval level")
        return jsonify({"error": "Internal server error"}), 500


@approval_levels_bp.delete("/approval-levels/<int:level_id>")
@require_service_key
def delete_level_route(level_id: int):
    try:
        approval_level_service.delete_level(level_id)
        return jsonify({"success": True}), 200
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete approval level")
        return jsonify({"error": "Internal server error"}), 500

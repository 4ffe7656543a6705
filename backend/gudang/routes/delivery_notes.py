# backend/gudang/routes/delivery_notes.py
"""
Delivery Note API Routes

- GET    /api/delivery-notes                  List notes (?approval_status=&division_id=)
- GET    /api/delivery-notes/<id>             Note with items, approvals and email attempts
- POST   /api/delivery-notes                  Submit a note into the approval flow
- PUT    /api/delivery-notes/<id>             Edit header; replace items while draft
- DELETE /api/delivery-notes/<id>             Delete (credits outstanding stock back)
- POST   /api/delivery-notes/<id>/remind      Re-send the approval request to the current approver
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import ApprovalNotFoundError
from ..services import approval_service, delivery_service, notification_service
from ..services.delivery_service import DeliveryNoteError
from ..services.stock_service import InsufficientStockError, list_transactions
from ..validation import ValidationError, parse_int, require_json_object
from ..decorators import require_service_key


delivery_notes_bp = Blueprint("delivery_notes", __name__, url_prefix="/api/delivery-notes")


def _note_payload(note) -> dict:
    data = note.to_dict(include_items=True)
    data["approvals"] = [record.to_dict() for record in approval_service.division_approvals(note)]
    return data


@delivery_notes_bp.get("")
@require_service_key
def list_delivery_notes_route():
    try:
        division_id = request.args.get("division_id")
        notes = delivery_service.list_delivery_notes(
            approval_status=request.args.get("approval_status"),
            division_id=parse_int(division_id, "division_id") if division_id else None,
        )
        return jsonify({"delivery_notes": [n.to_dict() for n in notes]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list delivery notes")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.get("/<int:delivery_note_id>")
@require_service_key
def get_delivery_note_route(delivery_note_id: int):
    try:
        note = delivery_service.get_delivery_note(delivery_note_id)
        data = _note_payload(note)
        data["stock_transactions"] = [tx.to_dict() for tx in list_transactions(reference_number=note.delivery_number)]
        data["notifications"] = [n.to_dict() for n in notification_service.list_attempts(note.id)]
        return jsonify({"delivery_note": data}), 200
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load delivery note")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.post("")
@require_service_key
def create_delivery_note_route():
    """
    Submit a delivery note.

    Request body:
    {
        "customer_name": "PT Maju Jaya",
        "customer_address": "Jl. Industri 1",     (optional)
        "customer_phone": "0812...",              (optional)
        "division_id": 1,
        "delivery_date": "2026-10-20",
        "notes": "...",                           (optional)
        "items": [{"product_id": 1, "quantity": 5, "notes": "..."}]
    }

    Returns:
        201: {"delivery_note": {...}, "notification": {...}}
        400: invalid input or no approval chain for the division
        409: insufficient stock
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        note, notification = delivery_service.create_delivery_note(data)
        return jsonify({
            "delivery_note": _note_payload(note),
            "notification": notification.to_dict(),
        }), 201
    except (ValidationError, DeliveryNoteError) as e:
        return jsonify({"error": str(e)}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create delivery note")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.put("/<int:delivery_note_id>")
@require_service_key
def update_delivery_note_route(delivery_note_id: int):
    try:
        data = require_json_object(request.get_json(silent=True))
        note, notification = delivery_service.update_delivery_note(delivery_note_id, data)
        body = {"delivery_note": _note_payload(note)}
        if notification is not None:
            body["notification"] = notification.to_dict()
        return jsonify(body), 200
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, DeliveryNoteError) as e:
        return jsonify({"error": str(e)}), 400
    except InsufficientStockError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update delivery note")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.delete("/<int:delivery_note_id>")
@require_service_key
def delete_delivery_note_route(delivery_note_id: int):
    try:
        delivery_service.delete_delivery_note(delivery_note_id)
        return jsonify({"success": True}), 200
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete delivery note")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.post("/<int:delivery_note_id>/remind")
@require_service_key
def remind_delivery_note_route(delivery_note_id: int):
    """
    Re-send the approval request (type=reminder) with a fresh link.

    Returns:
        200: {"success": true, "emailId": "...", "sentTo": "..."} or {"message": "No pending approvals"}
        404: note not found
        409: note is no longer pending approval
        500: the email could not be sent
    """
    try:
        note = delivery_service.get_delivery_note(delivery_note_id)
        result = approval_service.send_reminder(note)
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ApprovalNotFoundError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to send reminder")
        return jsonify({"error": "Internal server error"}), 500

    if result.skipped:
        return jsonify({"message": result.error}), 200
    if not result.success:
        return jsonify({"error": result.error}), 500
    return jsonify(result.to_dict()), 200

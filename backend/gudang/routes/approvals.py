# backend/gudang/routes/approvals.py
"""
Delivery Note Approval Routes

- POST /handle-approval          In-app approve/reject of a (note, level) record
- GET  /handle-email-approval    Approve/reject through an emailed single-use link
- POST /send-approval-email      Send an approval_request / reminder / approved / rejected email

SECURITY:
- handle-approval and send-approval-email require the service bearer key
- handle-email-approval is authorized by its single-use, expiring token only
"""

from flask import Blueprint, current_app, jsonify, render_template, request

from ..errors import ApprovalNotFoundError, ApprovalTokenExpiredError
from ..models import NotificationKind
from ..services import approval_service
from ..services.approval_service import ResolutionOutcome
from ..validation import ValidationError, optional_str, parse_enum, parse_int, require_fields, require_json_object
from ..decorators import require_service_key


approvals_bp = Blueprint("approvals", __name__)


def _result_banner(outcome: ResolutionOutcome) -> tuple[str, str, str]:
    """(headline, color, icon) for the email-link confirmation page."""
    if outcome is ResolutionOutcome.REJECTED:
        return "DITOLAK", "#ef4444", "❌"
    if outcome is ResolutionOutcome.APPROVED:
        return "DISETUJUI LENGKAP", "#10b981", "✅"
    if outcome is ResolutionOutcome.ESCALATED:
        return "DISETUJUI (Menunggu approval berikutnya)", "#f59e0b", "⏳"
    raise AssertionError(f"unhandled outcome {outcome!r}")


def _error_page(status: int, headline: str, message: str, *, icon: str = "❌", detail: str | None = None):
    html = render_template("approvals/error.html", headline=headline, message=message, icon=icon, detail=detail)
    return html, status, {"Content-Type": "text/html; charset=utf-8"}


@approvals_bp.post("/handle-approval")
@require_service_key
def handle_approval_route():
    """
    Approve or reject one approval level of a delivery note.

    Request body:
    {
        "deliveryNoteId": 12,
        "approvalLevelId": 3,
        "action": "approve" | "reject",
        "notes": "optional free text"
    }

    Returns:
        200: {"success": true, "message": "..."}
        400: missing/invalid fields
        404: record not found or already resolved
        500: unexpected failure
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "deliveryNoteId", "approvalLevelId", "action")

        result = approval_service.resolve(
            parse_int(data["deliveryNoteId"], "deliveryNoteId", minimum=1),
            parse_int(data["approvalLevelId"], "approvalLevelId", minimum=1),
            data["action"],
            notes=optional_str(data.get("notes"), "notes"),
        )

        return jsonify({"success": True, "message": result.message}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ApprovalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        current_app.logger.exception("Error in handle-approval")
        return jsonify({"error": str(e) or "Internal server error"}), 500


@approvals_bp.get("/handle-email-approval")
def handle_email_approval_route():
    """
    Resolve an approval from the link in an approval email.

    Query parameters:
        token:  single-use approval token
        action: approve | reject

    Returns an HTML page:
        200: processed (approved, escalated, or rejected)
        400: missing parameters or expired link
        404: unknown or already used link
        500: unexpected failure
    """
    token = request.args.get("token")
    action = request.args.get("action")

    if not token or not action:
        return _error_page(400, "Link Tidak Valid", "Parameter yang diperlukan tidak tersedia.")

    current_app.logger.info("Processing email approval: action=%s", action)

    try:
        result = approval_service.resolve_by_token(token, action)
    except ValidationError:
        return _error_page(400, "Link Tidak Valid", "Parameter yang diperlukan tidak valid.")
    except ApprovalNotFoundError:
        return _error_page(404, "Approval Tidak Ditemukan", "Link approval tidak valid atau sudah diproses sebelumnya.")
    except ApprovalTokenExpiredError:
        return _error_page(
            400,
            "Link Kadaluarsa",
            "Link approval telah kadaluarsa. Silakan minta link baru dari sistem.",
            icon="⏰",
        )
    except Exception as e:
        current_app.logger.exception("Error in handle-email-approval")
        return _error_page(
            500,
            "Terjadi Kesalahan",
            "Mohon maaf, terjadi kesalahan saat memproses approval.",
            detail=str(e),
        )

    headline, color, icon = _result_banner(result.outcome)
    html = render_template(
        "approvals/result.html",
        note=result.note,
        approver_name=result.record.approval_level.name,
        headline=headline,
        color=color,
        icon=icon,
    )
    return html, 200, {"Content-Type": "text/html; charset=utf-8"}


@approvals_bp.post("/send-approval-email")
@require_service_key
def send_approval_email_route():
    """
    Send one approval email for a delivery note.

    Request body:
    {
        "deliveryNoteId": 12,
        "deliveryNumber": "SJ-20261017-042",   (informational, optional)
        "customerName": "PT Maju",              (informational, optional)
        "type": "approval_request" | "reminder" | "approved" | "rejected"
    }

    Returns:
        200: {"success": true, "emailId": "...", "sentTo": "..."}
             or {"message": "No pending approvals"}
        400: invalid fields
        404: delivery note not found
        500: the email could not be sent
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "deliveryNoteId", "type")
        kind = parse_enum(NotificationKind, data["type"], "type")
        note = approval_service.get_note(parse_int(data["deliveryNoteId"], "deliveryNoteId", minimum=1))

        current_app.logger.info(
            "Processing email request for delivery note %s, type: %s", note.delivery_number, kind.value
        )
        result = approval_service.notify(note, kind)

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ApprovalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        current_app.logger.exception("Error in send-approval-email")
        return jsonify({"error": str(e) or "Internal server error"}), 500

    if result.skipped:
        return jsonify({"message": result.error}), 200
    if not result.success:
        return jsonify({"error": result.error}), 500
    return jsonify(result.to_dict()), 200

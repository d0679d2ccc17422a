# Overview: Flask API routes for cash handovers; parses input and returns JSON responses.

# backend/fuelcash/routes/handovers.py
"""
Cash Handover API Routes

WHY: Expose the custody chain (shift -> manager -> owner -> bank) to the
station apps. Routes only parse input and shape output; every rule lives
in handover_service.

DESIGN:
- Create/confirm/resolve are retried once on storage conflicts
- Business errors map to 4xx via business_error_response
- Unexpected faults are logged and returned as a generic 500
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..services import handover_service
from ..services.concurrency import run_with_retry
from ..services.errors import CashCustodyError
from ..time_utils import today
from ..validation import (
    ValidationError,
    require_payload,
    get_amount_cents,
    get_bool,
    get_date,
    get_int,
    get_str,
)
from .errors import business_error_response


handovers_bp = Blueprint("handovers", __name__, url_prefix="/api")


# =============================================================================
# CHAIN OPERATIONS
# =============================================================================

@handovers_bp.post("/handovers")
@require_actor
def create_handover_route():
    """
    Create a PENDING handover.

    Request body:
    {
        "stage_type": "employee_to_manager",
        "station_id": 1,
        "from_user_id": 7,
        "expected_amount_cents": 500000,
        "source_shift_id": 12,       (shift_collection only, optional)
        "occurred_on": "2025-01-10",  (optional, defaults to today)
        "notes": "..."                (optional)
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        stage_type = get_str(data, "stage_type")
        if not stage_type:
            raise ValidationError("stage_type is required")
        station_id = get_int(data, "station_id", required=True)
        from_user_id = get_int(data, "from_user_id", default=g.current_user.id)
        expected = get_amount_cents(data, "expected_amount_cents")
        source_shift_id = get_int(data, "source_shift_id")
        occurred_on = get_date(data, "occurred_on")
        notes = get_str(data, "notes")

        handover = run_with_retry(lambda: handover_service.create_handover(
            stage_type,
            station_id,
            from_user_id,
            expected,
            requested_by_user_id=g.current_user.id,
            source_shift_id=source_shift_id,
            occurred_on=occurred_on,
            notes=notes,
        ))
        return jsonify({"handover": handover.to_dict(), "message": "Handover created, pending confirmation"}), 201

    except CashCustodyError as e:
        return business_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create handover")
        return jsonify({"error": "Internal server error"}), 500


@handovers_bp.get("/handovers/<int:handover_id>")
@require_actor
def get_handover_route(handover_id: int):
    try:
        handover = handover_service.require_handover(handover_id)
        return jsonify({"handover": handover.to_dict()}), 200
    except CashCustodyError as e:
        return business_error_response(e)


@handovers_bp.post("/handovers/<int:handover_id>/confirm")
@require_actor
def confirm_handover_route(handover_id: int):
    """
    Receiving party confirms a handover.

    Request body:
    {
        "actual_amount_cents": 485000,   (omit with accept_as_is)
        "accept_as_is": false,
        "notes": "..."
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        accept_as_is = get_bool(data, "accept_as_is")
        actual = get_amount_cents(data, "actual_amount_cents", required=not accept_as_is)
        notes = get_str(data, "notes")

        handover = run_with_retry(lambda: handover_service.confirm_handover(
            handover_id,
            g.current_user.id,
            actual,
            accept_as_is=accept_as_is,
            notes=notes,
        ))

        if handover.status == "DISPUTED":
            message = f"Handover disputed: {handover.dispute_notes}"
        else:
            message = "Handover confirmed successfully"
        return jsonify({"handover": handover.to_dict(), "message": message}), 200

    except CashCustodyError as e:
        return business_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to confirm handover")
        return jsonify({"error": "Internal server error"}), 500


@handovers_bp.post("/handovers/<int:handover_id>/resolve")
@require_actor
def resolve_dispute_route(handover_id: int):
    """
    Resolve a disputed handover.

    Request body:
    {
        "final_amount_cents": 490000,
        "note": "Recount with owner present"
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        final_amount = get_amount_cents(data, "final_amount_cents")
        note = get_str(data, "note")

        handover = run_with_retry(lambda: handover_service.resolve_dispute(
            handover_id,
            g.current_user.id,
            final_amount,
            note,
        ))
        return jsonify({"handover": handover.to_dict(), "message": "Dispute resolved"}), 200

    except CashCustodyError as e:
        return business_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to resolve handover dispute")
        return jsonify({"error": "Internal server error"}), 500


@handovers_bp.post("/handovers/bank-deposit")
@require_actor
def record_bank_deposit_route():
    """
    Record a bank deposit (created and confirmed by the depositor).

    Request body:
    {
        "station_id": 1,
        "amount_cents": 1500000,
        "bank_name": "State Bank",
        "deposit_reference": "SLIP-0042",
        "deposit_receipt_url": "https://...",
        "occurred_on": "2025-01-11",
        "notes": "..."
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        station_id = get_int(data, "station_id", required=True)
        amount = get_amount_cents(data, "amount_cents")
        bank_name = get_str(data, "bank_name", max_length=100)
        deposit_reference = get_str(data, "deposit_reference", max_length=50)
        receipt_url = get_str(data, "deposit_receipt_url")
        occurred_on = get_date(data, "occurred_on")
        notes = get_str(data, "notes")

        handover = run_with_retry(lambda: handover_service.record_bank_deposit(
            station_id,
            g.current_user.id,
            amount,
            bank_name=bank_name,
            deposit_reference=deposit_reference,
            deposit_receipt_url=receipt_url,
            occurred_on=occurred_on,
            notes=notes,
        ))
        return jsonify({"handover": handover.to_dict(), "message": "Bank deposit recorded"}), 201

    except CashCustodyError as e:
        return business_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record bank deposit")
        return jsonify({"error": "Internal server error"}), 500


@handovers_bp.get("/handovers/pending")
@require_actor
def pending_handovers_route():
    """Handovers waiting for the caller to confirm."""
    station_id = request.args.get("station_id", type=int)
    handovers = handover_service.get_pending_for_user(g.current_user.id, station_id)
    return jsonify({
        "handovers": [h.to_dict() for h in handovers],
        "count": len(handovers),
    }), 200


# =============================================================================
# STATION VIEWS
# =============================================================================

def _date_window(require_both: bool):
    args = require_payload(request.args.to_dict())
    start = get_date(args, "start_date")
    end = get_date(args, "end_date")
    if require_both and (start is None or end is None):
        raise ValidationError("start_date and end_date are required")
    return start, end


@handovers_bp.get("/stations/<int:station_id>/handovers")
@require_actor
def list_station_handovers_route(station_id: int):
    """
    Paged station handovers.

    Query params: start_date, end_date, stage_type, status, page, per_page
    """
    try:
        start, end = _date_window(require_both=False)
        page = max(request.args.get("page", 1, type=int), 1)
        per_page = min(max(request.args.get("per_page", 50, type=int), 1), 200)

        rows, total = handover_service.list_station_handovers(
            station_id,
            start=start,
            end=end,
            stage_type=request.args.get("stage_type") or None,
            status=request.args.get("status") or None,
            page=page,
            per_page=per_page,
        )
        return jsonify({
            "handovers": [h.to_dict() for h in rows],
            "pagination": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "pages": (total + per_page - 1) // per_page,
            },
        }), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@handovers_bp.get("/stations/<int:station_id>/handovers/summary")
@require_actor
def cash_flow_summary_route(station_id: int):
    try:
        start, end = _date_window(require_both=True)
        return jsonify({"summary": handover_service.get_cash_flow_summary(station_id, start, end)}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@handovers_bp.get("/stations/<int:station_id>/handovers/unconfirmed")
@require_actor
def unconfirmed_handovers_route(station_id: int):
    """PENDING handovers in the window (defaults to today)."""
    try:
        start, end = _date_window(require_both=False)
        start = start or today()
        end = end or start
        rows = handover_service.get_unconfirmed(station_id, start, end)
        return jsonify({
            "handovers": [h.to_dict() for h in rows],
            "count": len(rows),
            "alert": f"{len(rows)} handover(s) pending confirmation" if rows else None,
        }), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@handovers_bp.get("/stations/<int:station_id>/handovers/bank-deposits")
@require_actor
def bank_deposits_route(station_id: int):
    try:
        start, end = _date_window(require_both=True)
        deposits, total = handover_service.get_bank_deposits(station_id, start, end)
        return jsonify({
            "handovers": [d.to_dict() for d in deposits],
            "summary": {"count": len(deposits), "total_deposited_cents": total},
        }), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@handovers_bp.get("/stations/<int:station_id>/handovers/integrity")
@require_actor
def chain_integrity_route(station_id: int):
    issues = handover_service.verify_chain_integrity(station_id)
    return jsonify({
        "station_id": station_id,
        "ok": not issues,
        "issues": [i.to_dict() for i in issues],
    }), 200

# Overview: Flask API routes for daily settlements; parses input and returns JSON responses.

# backend/fuelcash/routes/settlements.py
"""
Settlement API Routes

- POST records the day's reconciliation (expected cash is always recomputed
  server side from the selected readings; any client value is ignored)
- GET lists history, most recent first
- readings-for-settlement shows what is still open for a day
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..services import reading_service, settlement_service
from ..services.concurrency import run_with_retry
from ..services.errors import CashCustodyError
from ..time_utils import today
from ..validation import (
    ValidationError,
    require_payload,
    get_amount_cents,
    get_date,
    get_int_list,
    get_str,
)
from .errors import business_error_response


settlements_bp = Blueprint("settlements", __name__, url_prefix="/api/stations")


@settlements_bp.post("/<int:station_id>/settlements")
@require_actor
def record_settlement_route(station_id: int):
    """
    Record a daily settlement.

    Request body:
    {
        "date": "2025-01-10",
        "actual_cash_cents": 300000,
        "reading_ids": [11, 12],   (optional; omitted = all unlinked readings of the day)
        "notes": "..."
    }
    """
    try:
        data = require_payload(request.get_json(silent=True))
        settlement_date = get_date(data, "date") or today()
        actual_cash = get_amount_cents(data, "actual_cash_cents")
        reading_ids = get_int_list(data, "reading_ids")
        notes = get_str(data, "notes")

        settlement = run_with_retry(lambda: settlement_service.record_settlement(
            station_id,
            settlement_date,
            actual_cash,
            reading_ids,
            recorded_by_user_id=g.current_user.id,
            notes=notes,
        ))
        return jsonify({
            "settlement": settlement.to_dict(),
            "metadata": {
                "variance_calculation": (
                    f"{settlement.expected_cash_cents} - {settlement.actual_cash_cents} = {settlement.variance_cents}"
                ),
                "linked_readings": len(settlement.linked_reading_ids),
            },
        }), 201

    except CashCustodyError as e:
        return business_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record settlement")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/<int:station_id>/settlements")
@require_actor
def settlement_history_route(station_id: int):
    """Settlement history. Query params: limit (default from config)."""
    limit = request.args.get("limit", type=int)
    try:
        rows = settlement_service.get_settlement_history(station_id, limit)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "settlements": [s.to_dict() for s in rows],
        "count": len(rows),
    }), 200


@settlements_bp.get("/<int:station_id>/readings-for-settlement")
@require_actor
def readings_for_settlement_route(station_id: int):
    """Linked and unlinked readings for a day, with tender totals."""
    try:
        args = require_payload(request.args.to_dict())
        reading_date = get_date(args, "date") or today()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(reading_service.get_settlement_candidates_summary(station_id, reading_date)), 200

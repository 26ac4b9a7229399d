# Overview: Flask API routes for receivables/payables aging reports.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN, ROLE_EMPLOYEE
from ..services import aging_service
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _today():
    value = request.args.get("today")
    return parse_iso_date(value) if value else None


@reports_bp.get("/aging")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def aging_summary_route():
    """
    Receivables and payables aging plus net position, in the base currency.

    Query params:
    - today: reference date (YYYY-MM-DD), defaults to the UTC date
    """
    try:
        return jsonify(aging_service.aging_summary(_today())), 200
    except ValueError:
        return jsonify({"error": "today must be an ISO date (YYYY-MM-DD)"}), 400
    except Exception:
        current_app.logger.exception("Failed to build aging summary")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/aging/<side>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def aging_side_route(side: str):
    builders = {
        "receivables": aging_service.receivables_aging,
        "payables": aging_service.payables_aging,
    }
    if side not in builders:
        return jsonify({"error": "Unknown report; use receivables or payables"}), 404
    try:
        return jsonify({side: builders[side](_today()).to_dict()}), 200
    except ValueError:
        return jsonify({"error": "today must be an ISO date (YYYY-MM-DD)"}), 400
    except Exception:
        current_app.logger.exception("Failed to build %s aging", side)
        return jsonify({"error": "Internal server error"}), 500

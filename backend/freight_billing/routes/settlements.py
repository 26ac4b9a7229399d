# Overview: Flask API routes for agent settlement batches.

"""
Settlement API Routes

SECURITY:
- Admins draw up, approve, pay and cancel settlements
- Staff read every settlement; an agent reads only their own
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN, ROLE_AGENT, ROLE_EMPLOYEE
from ..services import settlement_service
from ..services.currency_service import CurrencyError
from ..services.settlement_service import SettlementError, SettlementNotFoundError, SettlementStatusError
from ..validation import ConflictError, ValidationError, parse_int


settlements_bp = Blueprint("settlements", __name__, url_prefix="/api/settlements")


def _can_read(settlement) -> bool:
    user = g.current_user
    if user.role in (ROLE_ADMIN, ROLE_EMPLOYEE):
        return True
    return user.role == ROLE_AGENT and settlement.agent_id == user.id


# =============================================================================
# QUERIES
# =============================================================================

@settlements_bp.get("/")
@require_actor
def list_settlements_route():
    """
    Query params:
    - status: pending, approved, paid, cancelled, all
    - agent_id (staff only; agents always get their own)
    - search: matches the settlement number
    """
    user = g.current_user
    try:
        if user.role == ROLE_AGENT:
            agent_id = user.id
        elif user.role in (ROLE_ADMIN, ROLE_EMPLOYEE):
            agent_id = parse_int(request.args.get("agent_id"), "agent_id", required=False)
        else:
            return jsonify({"error": "Permission denied"}), 403

        settlements = settlement_service.list_settlements(
            status=request.args.get("status"),
            agent_id=agent_id,
            search=request.args.get("search"),
        )
        return jsonify({"settlements": [s.to_dict() for s in settlements]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list settlements")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/unsettled")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def list_unsettled_route():
    """Paid invoices of ?agent_id= not yet in a live settlement (?settlement_type= narrows)."""
    try:
        agent_id = parse_int(request.args.get("agent_id"), "agent_id")
        invoices = settlement_service.list_unsettled_invoices(agent_id, request.args.get("settlement_type"))
        return jsonify({"invoices": [invoice.to_dict() for invoice in invoices]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SettlementError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list unsettled invoices")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/<int:settlement_id>")
@require_actor
def get_settlement_route(settlement_id: int):
    try:
        settlement = settlement_service.get_settlement(settlement_id)
        if not _can_read(settlement):
            return jsonify({"error": "Permission denied"}), 403
        return jsonify({"settlement": settlement_service.get_settlement_detail(settlement_id)}), 200

    except SettlementNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load settlement")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATE / STATUS
# =============================================================================

@settlements_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN)
def create_settlement_route():
    """
    Request body:
    {
        "agent_id": 7,
        "settlement_type": "payment_to_agent",
        "invoice_ids": [12, 15],
        "currency": "GBP",              (optional, default agent currency)
        "period_start": "2026-09-01",   (optional)
        "period_end": "2026-09-30",     (optional)
        "notes": "..."
    }

    Returns:
        201: Settlement with items
        400: Invalid input or an invoice that cannot be settled
        409: An invoice is already in a settlement
    """
    try:
        data = request.get_json(silent=True) or {}
        settlement = settlement_service.create_settlement(
            agent_id=data.get("agent_id"),
            invoice_ids=data.get("invoice_ids"),
            settlement_type=data.get("settlement_type"),
            actor_user_id=g.current_user.id,
            currency=data.get("currency"),
            period_start=data.get("period_start"),
            period_end=data.get("period_end"),
            notes=data.get("notes"),
        )
        return jsonify({"settlement": settlement_service.get_settlement_detail(settlement.id)}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, SettlementError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create settlement")
        return jsonify({"error": "Internal server error"}), 500


def _status_response(action, settlement_id: int, **kwargs):
    try:
        settlement = action(settlement_id, actor_user_id=g.current_user.id, **kwargs)
        return jsonify({"settlement": settlement.to_dict()}), 200

    except SettlementNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SettlementStatusError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update settlement %s", settlement_id)
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.post("/<int:settlement_id>/approve")
@require_actor
@require_role(ROLE_ADMIN)
def approve_settlement_route(settlement_id: int):
    return _status_response(settlement_service.approve_settlement, settlement_id)


@settlements_bp.post("/<int:settlement_id>/pay")
@require_actor
@require_role(ROLE_ADMIN)
def pay_settlement_route(settlement_id: int):
    data = request.get_json(silent=True) or {}
    return _status_response(
        settlement_service.mark_settlement_paid,
        settlement_id,
        payment_reference=data.get("payment_reference"),
    )


@settlements_bp.post("/<int:settlement_id>/cancel")
@require_actor
@require_role(ROLE_ADMIN)
def cancel_settlement_route(settlement_id: int):
    data = request.get_json(silent=True) or {}
    return _status_response(settlement_service.cancel_settlement, settlement_id, reason=data.get("reason"))

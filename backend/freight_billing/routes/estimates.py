# Overview: Flask API routes for freight estimates and their conversion to invoices.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN, ROLE_EMPLOYEE
from ..services import estimate_service, invoice_service
from ..services.currency_service import CurrencyError
from ..services.estimate_service import EstimateError, EstimateNotFoundError
from ..services.invoice_service import InvoiceError
from ..validation import ValidationError, parse_int


estimates_bp = Blueprint("estimates", __name__, url_prefix="/api/estimates")


@estimates_bp.get("/")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def list_estimates_route():
    try:
        estimates = estimate_service.list_estimates(
            status=request.args.get("status"),
            customer_id=parse_int(request.args.get("customer_id"), "customer_id", required=False),
        )
        return jsonify({"estimates": [e.to_dict() for e in estimates]}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list estimates")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def create_estimate_route():
    """
    Request body:
    {
        "customer_id": 1,
        "origin_region": "china",
        "weight_kg": "120",
        "rate_per_kg": "8.5",
        "handling_fee": "25",
        "currency": "USD",
        "valid_days": 14,
        "notes": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        estimate = estimate_service.create_estimate(
            actor_user_id=g.current_user.id,
            customer_id=data.get("customer_id"),
            origin_region=data.get("origin_region"),
            weight_kg=data.get("weight_kg"),
            rate_per_kg=data.get("rate_per_kg"),
            handling_fee=data.get("handling_fee"),
            currency=data.get("currency"),
            notes=data.get("notes"),
            valid_days=data.get("valid_days"),
        )
        return jsonify({"estimate": estimate.to_dict()}), 201

    except (ValidationError, EstimateError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/status")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def update_estimate_status_route(estimate_id: int):
    try:
        data = request.get_json(silent=True) or {}
        estimate = estimate_service.update_estimate_status(
            estimate_id,
            data.get("status"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"estimate": estimate.to_dict()}), 200

    except EstimateNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, EstimateError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update estimate status")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/convert")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def convert_estimate_route(estimate_id: int):
    """
    Issue an invoice from the estimate.

    Returns:
        201: The new invoice (with items)
        404: Estimate not found
        409: Estimate already converted or rejected
    """
    try:
        invoice = estimate_service.convert_estimate_to_invoice(estimate_id, actor_user_id=g.current_user.id)
        return jsonify({"invoice": invoice_service.get_invoice_detail(invoice.id)}), 201

    except EstimateNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except EstimateError as e:
        return jsonify({"error": str(e)}), 409
    except (InvoiceError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to convert estimate")
        return jsonify({"error": "Internal server error"}), 500

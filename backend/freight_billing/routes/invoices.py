# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/freight_billing/routes/invoices.py
"""
Invoice API Routes

WHY: Staff build invoices from ordered line items and edit them as a
whole. The calculate endpoint previews totals without saving anything.

SECURITY:
- Any known actor can preview invoices
- Staff read every invoice; agents and customer portal users only their own
- Admins and employees create and edit invoices and change status
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN, ROLE_AGENT, ROLE_CUSTOMER, ROLE_EMPLOYEE
from ..services import currency_service, invoice_calculator, invoice_service
from ..services.currency_service import CurrencyError
from ..services.invoice_service import InvoiceError, InvoiceNotFoundError
from ..time_utils import parse_iso_date
from ..validation import ValidationError, parse_currency_code, parse_int


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


# =============================================================================
# PREVIEW
# =============================================================================

@invoices_bp.post("/calculate")
@require_actor
def calculate_route():
    """
    Preview line-item amounts and totals. Nothing is persisted.

    Request body:
    {
        "line_items": [
            {"quantity": 1, "unit_price": "100", "unit_type": "fixed"},
            {"unit_price": "10", "unit_type": "percent"}
        ],
        "discount": "10%",
        "tax_rate": "18",
        "currency": "USD"
    }

    Malformed numbers and discounts count as 0 here, matching what the
    saved invoice would show.
    """
    try:
        data = request.get_json(silent=True) or {}
        line_items = data.get("line_items") or []
        if not isinstance(line_items, list):
            return jsonify({"error": "line_items must be a list"}), 400

        currency = data.get("currency")
        currency = parse_currency_code(currency) if currency else None

        calculation = invoice_calculator.calculate_invoice(
            line_items,
            data.get("discount"),
            data.get("tax_rate"),
            currency=currency,
            rates=currency_service.load_rate_map(),
            **currency_service.conversion_options(),
        )
        return jsonify(calculation.to_dict()), 200

    except (ValidationError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to calculate invoice")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATE / UPDATE
# =============================================================================

@invoices_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def create_invoice_route():
    """
    Create an invoice with line items.

    Request body:
    {
        "invoice_direction": "to_customer",
        "customer_id": 1,
        "currency": "USD",
        "line_items": [...],
        "discount": "$25.00",
        "tax_rate": "18",
        "due_date": "2026-03-31",
        "notes": "..."
    }

    Returns:
        201: Invoice created (with items)
        400: Invalid input
    """
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.create_invoice(
            actor_user_id=g.current_user.id,
            line_items=data.get("line_items"),
            invoice_direction=data.get("invoice_direction"),
            customer_id=data.get("customer_id"),
            agent_id=data.get("agent_id"),
            currency=data.get("currency"),
            discount=data.get("discount"),
            tax_rate=data.get("tax_rate"),
            due_date=data.get("due_date"),
            notes=data.get("notes"),
        )
        return jsonify({"invoice": invoice_service.get_invoice_detail(invoice.id)}), 201

    except (ValidationError, InvoiceError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def update_invoice_route(invoice_id: int):
    """
    Edit an invoice. When line_items is present it replaces the item set:
    items with an id are updated, items without one are created and
    persisted items left out are deleted. Any failure leaves the invoice
    exactly as it was.
    """
    try:
        data = request.get_json(silent=True) or {}
        fields = {key: data[key] for key in invoice_service.EDITABLE_FIELDS if key in data}
        invoice_service.update_invoice(
            invoice_id,
            actor_user_id=g.current_user.id,
            line_items=data.get("line_items"),
            **fields,
        )
        return jsonify({"invoice": invoice_service.get_invoice_detail(invoice_id)}), 200

    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, InvoiceError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/status")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def update_status_route(invoice_id: int):
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.update_invoice_status(
            invoice_id,
            data.get("status"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"invoice": invoice.to_dict()}), 200

    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, InvoiceError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/mark-overdue")
@require_actor
@require_role(ROLE_ADMIN)
def mark_overdue_route():
    try:
        data = request.get_json(silent=True) or {}
        today = parse_iso_date(data["today"]) if data.get("today") else None
        changed = invoice_service.mark_overdue_invoices(today)
        return jsonify({"marked_overdue": changed}), 200

    except ValueError:
        return jsonify({"error": "today must be an ISO date (YYYY-MM-DD)"}), 400
    except Exception:
        current_app.logger.exception("Failed to mark overdue invoices")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@invoices_bp.get("/")
@require_actor
def list_invoices_route():
    """
    List invoices, newest first.

    Query params:
    - status: pending, paid, overdue, cancelled
    - direction: to_customer, to_agent, from_agent
    - agent_id, customer_id
    - search: matches invoice number, notes or customer name

    Agents only ever see invoices naming them; customer portal users only
    invoices billed to their customer. Their agent_id filter is ignored.
    """
    try:
        user = g.current_user
        agent_id = parse_int(request.args.get("agent_id"), "agent_id", required=False)
        customer_user_id = None
        if user.role == ROLE_AGENT:
            agent_id = user.id
        elif user.role == ROLE_CUSTOMER:
            customer_user_id = user.id
        elif user.role not in invoice_service.STAFF_ROLES:
            return jsonify({"error": "Permission denied"}), 403

        invoices = invoice_service.list_invoices(
            status=request.args.get("status"),
            direction=request.args.get("direction"),
            agent_id=agent_id,
            customer_id=parse_int(request.args.get("customer_id"), "customer_id", required=False),
            customer_user_id=customer_user_id,
            search=request.args.get("search"),
        )
        return jsonify({"invoices": invoice_service.summarize_invoices(invoices)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_actor
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        if not invoice_service.can_access_invoice(g.current_user, invoice):
            return jsonify({"error": "Permission denied"}), 403
        return jsonify({"invoice": invoice_service.get_invoice_detail(invoice_id)}), 200

    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500

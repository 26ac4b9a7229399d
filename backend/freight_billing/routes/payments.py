# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/freight_billing/routes/payments.py
"""
Payment API Routes

WHY: Staff record payments they have received; agents and customers
report payments that an admin then verifies or rejects.

DESIGN:
- Admin-recorded payments count immediately
- Submitted payments wait in the verification queue
- Verify/reject only move a payment out of pending, once

SECURITY:
- Admins record, verify and reject payments
- Staff, the invoice's agent and the customer's portal user can submit a
  payment and read the invoice's payments
- Admins cannot verify payments they submitted themselves
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN
from ..services import invoice_service, payment_service
from ..services.currency_service import CurrencyError
from ..services.invoice_service import InvoiceNotFoundError
from ..services.payment_service import (
    PaymentError,
    PaymentNotFoundError,
    PaymentPermissionError,
    PaymentVerificationError,
)
from ..validation import ValidationError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/invoices/<int:invoice_id>")
@require_actor
@require_role(ROLE_ADMIN)
def record_payment_route(invoice_id: int):
    """
    Record a payment against an invoice.

    Request body:
    {
        "amount": "150.00",
        "payment_method": "bank_transfer",
        "currency": "USD",             (optional, must match the invoice)
        "convert_from": "TZS",         (optional, amount is in this currency)
        "deposit_account_code": "1130", (optional)
        "paid_at": "2026-02-01",       (optional, default now)
        "reference": "TT-20260201",    (optional)
        "notes": "...",                (optional)
        "mark_paid": false             (optional)
    }

    Returns:
        201: Payment recorded, with the updated summary
        400: Invalid input
        404: Invoice not found
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = payment_service.record_payment(
            invoice_id,
            amount=data.get("amount"),
            payment_method=data.get("payment_method"),
            actor_user_id=g.current_user.id,
            currency=data.get("currency"),
            convert_from=data.get("convert_from"),
            deposit_account_code=data.get("deposit_account_code"),
            paid_at=data.get("paid_at"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            mark_paid=bool(data.get("mark_paid", False)),
        )
        summary = payment_service.get_payment_summary(invoice_id)
        return jsonify({"payment": payment.to_dict(), "summary": summary}), 201

    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, PaymentError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/invoices/<int:invoice_id>/submit")
@require_actor
def submit_payment_route(invoice_id: int):
    """
    Report a payment for verification (agents and customers).

    Request body:
    {
        "payment_method": "mobile_money",
        "reference": "MM-123",
        "currency": "TZS"     (optional: invoice currency or base currency)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = payment_service.submit_payment(
            invoice_id,
            actor_user_id=g.current_user.id,
            payment_method=data.get("payment_method"),
            reference=data.get("reference"),
            currency=data.get("currency"),
            paid_at=data.get("paid_at"),
            notes=data.get("notes"),
        )
        return jsonify({"payment": payment.to_dict()}), 201

    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentPermissionError:
        return jsonify({"error": "Permission denied"}), 403
    except (ValidationError, PaymentError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to submit payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/invoices/<int:invoice_id>")
@require_actor
def get_invoice_payments_route(invoice_id: int):
    """
    Payments for an invoice with the reconciled summary.

    Query params:
    - include_rejected: Include rejected payments (default: true)
    """
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        if not invoice_service.can_access_invoice(g.current_user, invoice):
            return jsonify({"error": "Permission denied"}), 403

        include_rejected = request.args.get("include_rejected", "true").lower() == "true"
        summary = payment_service.get_payment_summary(invoice_id)
        payments = payment_service.get_invoice_payments(invoice_id, include_rejected=include_rejected)
        return jsonify({
            "invoice_id": invoice_id,
            "payments": [p.to_dict() for p in payments],
            "summary": summary,
        }), 200

    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load invoice payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/pending")
@require_actor
@require_role(ROLE_ADMIN)
def list_pending_route():
    try:
        payments = payment_service.list_pending_verifications()
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except Exception:
        current_app.logger.exception("Failed to list pending payments")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VERIFICATION
# =============================================================================

@payments_bp.post("/<int:payment_id>/verify")
@require_actor
@require_role(ROLE_ADMIN)
def verify_payment_route(payment_id: int):
    """
    Verify a pending payment; the invoice becomes paid.

    Request body (optional):
    {
        "deposit_account_code": "1130",
        "notes": "Matched on bank statement"
    }

    Returns:
        200: Verified payment
        404: Payment not found
        409: Payment is not pending, or actor submitted it
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = payment_service.verify_payment(
            payment_id,
            actor_user_id=g.current_user.id,
            deposit_account_code=data.get("deposit_account_code"),
            notes=data.get("notes"),
        )
        return jsonify({"payment": payment.to_dict()}), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentVerificationError as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, PaymentError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to verify payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/reject")
@require_actor
@require_role(ROLE_ADMIN)
def reject_payment_route(payment_id: int):
    try:
        data = request.get_json(silent=True) or {}
        payment = payment_service.reject_payment(
            payment_id,
            actor_user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"payment": payment.to_dict()}), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentVerificationError as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, PaymentError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reject payment")
        return jsonify({"error": "Internal server error"}), 500

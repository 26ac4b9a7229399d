# Overview: Flask API routes for exchange rates; admin CRUD plus a conversion helper.

# backend/freight_billing/routes/exchange_rates.py
"""
Exchange Rate API Routes

WHY: Every money-displaying view converts through the base currency, and
administrators keep the rates current by hand.

SECURITY:
- Any known actor can read rates and convert
- Only admins create, update or delete rates
- The base currency cannot be deleted or re-rated
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN
from ..money import decimal_to_str, quantize_money
from ..services import currency_service, exchange_rate_service
from ..services.currency_service import CurrencyError
from ..services.exchange_rate_service import ExchangeRateError, ExchangeRateNotFoundError
from ..validation import ConflictError, ValidationError, parse_currency_code, parse_decimal


exchange_rates_bp = Blueprint("exchange_rates", __name__, url_prefix="/api/exchange-rates")


@exchange_rates_bp.get("/")
@require_actor
def list_rates_route():
    rates = exchange_rate_service.list_exchange_rates()
    return jsonify({
        "base_currency": current_app.config.get("BASE_CURRENCY"),
        "rates": [r.to_dict() for r in rates],
    }), 200


@exchange_rates_bp.post("/")
@require_actor
@require_role(ROLE_ADMIN)
def create_rate_route():
    """
    Add a currency.

    Request body:
    {
        "currency_code": "KES",
        "currency_name": "Kenyan Shilling",
        "rate_to_base": "19.5"
    }

    Returns:
        201: Rate created
        400: Invalid input
        409: Currency already exists
    """
    try:
        data = request.get_json(silent=True) or {}
        rate = exchange_rate_service.create_exchange_rate(
            currency_code=data.get("currency_code"),
            currency_name=data.get("currency_name"),
            rate_to_base=data.get("rate_to_base"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"rate": rate.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, ExchangeRateError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create exchange rate")
        return jsonify({"error": "Internal server error"}), 500


@exchange_rates_bp.put("/<string:currency_code>")
@require_actor
@require_role(ROLE_ADMIN)
def update_rate_route(currency_code: str):
    try:
        data = request.get_json(silent=True) or {}
        rate = exchange_rate_service.update_exchange_rate(
            currency_code,
            rate_to_base=data.get("rate_to_base"),
            currency_name=data.get("currency_name"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"rate": rate.to_dict()}), 200

    except ExchangeRateNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, ExchangeRateError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update exchange rate")
        return jsonify({"error": "Internal server error"}), 500


@exchange_rates_bp.delete("/<string:currency_code>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_rate_route(currency_code: str):
    try:
        exchange_rate_service.delete_exchange_rate(currency_code, actor_user_id=g.current_user.id)
        return jsonify({"deleted": currency_code.upper()}), 200

    except ExchangeRateNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, ExchangeRateError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete exchange rate")
        return jsonify({"error": "Internal server error"}), 500


@exchange_rates_bp.post("/convert")
@require_actor
def convert_route():
    """
    Convert an amount between two currencies via the base currency.

    Request body:
    {
        "amount": "100",
        "from_currency": "USD",
        "to_currency": "GBP"
    }

    Returns the full-precision result and a 2-place display value.
    """
    try:
        data = request.get_json(silent=True) or {}
        amount = parse_decimal(data.get("amount"), "amount", allow_negative=True)
        from_currency = parse_currency_code(data.get("from_currency"), "from_currency")
        to_currency = parse_currency_code(data.get("to_currency"), "to_currency")

        converted = currency_service.convert(
            amount,
            from_currency,
            to_currency,
            currency_service.load_rate_map(),
            **currency_service.conversion_options(),
        )
        return jsonify({
            "amount": decimal_to_str(amount),
            "from_currency": from_currency,
            "to_currency": to_currency,
            "converted": decimal_to_str(converted),
            "display": str(quantize_money(converted)),
        }), 200

    except (ValidationError, CurrencyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to convert amount")
        return jsonify({"error": "Internal server error"}), 500

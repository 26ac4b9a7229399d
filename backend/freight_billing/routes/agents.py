# Overview: Flask API routes for agent settlement balances.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..models.parties import ROLE_ADMIN, ROLE_AGENT, ROLE_EMPLOYEE
from ..services import agent_balance_service
from ..services.agent_balance_service import AgentBalanceError


agents_bp = Blueprint("agents", __name__, url_prefix="/api/agents")


@agents_bp.get("/balances")
@require_actor
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE)
def list_balances_route():
    """
    Net settlement position of every agent, each in the agent's base currency.

    net_balance > 0: agent owes the company; < 0: company owes the agent.
    """
    try:
        balances = agent_balance_service.get_all_agent_balances()
        return jsonify({"balances": [b.to_dict() for b in balances]}), 200
    except Exception:
        current_app.logger.exception("Failed to load agent balances")
        return jsonify({"error": "Internal server error"}), 500


@agents_bp.get("/<int:agent_id>/balance")
@require_actor
def get_balance_route(agent_id: int):
    """Staff can read any agent's balance; an agent only their own."""
    user = g.current_user
    if user.role == ROLE_AGENT and user.id != agent_id:
        return jsonify({"error": "Permission denied"}), 403
    if user.role not in (ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_AGENT):
        return jsonify({"error": "Permission denied"}), 403

    try:
        balance = agent_balance_service.get_agent_balance(agent_id)
        return jsonify({"balance": balance.to_dict()}), 200
    except AgentBalanceError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load agent balance")
        return jsonify({"error": "Internal server error"}), 500

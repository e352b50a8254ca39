# Overview: Flask API routes for commissions and payouts; parses input and returns JSON responses.

"""
Commission and payout API routes

Vendors read their commission ledger and request payouts; admins settle
payouts. Amounts are always in cents.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth, require_role
from ..errors import ServiceError, error_response
from ..models.auth import ROLE_VENDOR
from ..services import catalog_service, commission_service
from ..validation import parse_int, parse_optional_str, require_fields, require_json_object

commissions_bp = Blueprint("commissions", __name__, url_prefix="/api")


def _managed_store(store_id: int):
    store = catalog_service.get_store(store_id)
    catalog_service.ensure_can_manage_store(store, g.current_user)
    return store


@commissions_bp.get("/stores/<int:store_id>/commissions")
@require_auth
@require_role(ROLE_VENDOR)
def list_commissions_route(store_id: int):
    """Query params: status (pending|processing|paid|failed), optional."""
    try:
        _managed_store(store_id)
        commissions = commission_service.get_store_commissions(store_id, request.args.get("status") or None)
        return jsonify({"commissions": [c.to_dict() for c in commissions]}), 200
    except ServiceError as e:
        return error_response(e)


@commissions_bp.get("/stores/<int:store_id>/commission-stats")
@require_auth
@require_role(ROLE_VENDOR)
def commission_stats_route(store_id: int):
    try:
        _managed_store(store_id)
        return jsonify({"stats": commission_service.get_commission_stats(store_id)}), 200
    except ServiceError as e:
        return error_response(e)


@commissions_bp.get("/stores/<int:store_id>/payouts")
@require_auth
@require_role(ROLE_VENDOR)
def list_payouts_route(store_id: int):
    try:
        _managed_store(store_id)
        payouts = commission_service.list_payouts(store_id)
        return jsonify({"payouts": [p.to_dict() for p in payouts]}), 200
    except ServiceError as e:
        return error_response(e)


@commissions_bp.get("/payouts/<int:payout_id>")
@require_auth
@require_role(ROLE_VENDOR)
def get_payout_route(payout_id: int):
    try:
        payout = commission_service.get_payout(payout_id)
        _managed_store(payout.store_id)
        return jsonify({"payout": payout.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@commissions_bp.post("/stores/<int:store_id>/payouts")
@require_auth
@require_role(ROLE_VENDOR)
def request_payout_route(store_id: int):
    """
    Request a payout of every pending commission.

    Body: bank_details {account_name, bank_name, account_number,
    routing_number}, notes (optional), amount_cents (optional, advisory;
    the server recomputes the amount).
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "bank_details")

        amount = data.get("amount_cents")
        payout = commission_service.request_payout(
            store_id,
            data["bank_details"],
            notes=parse_optional_str(data.get("notes"), "notes"),
            requested_amount_cents=parse_int(amount, "amount_cents", minimum=0) if amount is not None else None,
            actor=g.current_user,
        )
        return jsonify({"payout": payout.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request payout")
        return jsonify({"error": "Internal server error"}), 500


@commissions_bp.post("/payouts/<int:payout_id>/complete")
@require_auth
@require_admin
def complete_payout_route(payout_id: int):
    """Mark a processing payout paid; its commissions become paid. Admin only."""
    try:
        data = require_json_object(request.get_json(silent=True))
        payout = commission_service.complete_payout(
            payout_id,
            admin=g.current_user,
            notes=parse_optional_str(data.get("notes"), "notes"),
        )
        return jsonify({"payout": payout.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete payout")
        return jsonify({"error": "Internal server error"}), 500


@commissions_bp.post("/payouts/<int:payout_id>/fail")
@require_auth
@require_admin
def fail_payout_route(payout_id: int):
    """Mark a processing payout failed; its commissions return to pending. Admin only."""
    try:
        data = require_json_object(request.get_json(silent=True))
        payout = commission_service.fail_payout(
            payout_id,
            admin=g.current_user,
            reason=parse_optional_str(data.get("reason"), "reason"),
        )
        return jsonify({"payout": payout.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fail payout")
        return jsonify({"error": "Internal server error"}), 500

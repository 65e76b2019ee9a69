from flask import Blueprint, current_app, request

from consult.schemas.common import load_body
from consult.schemas.payout_schema import (
    PayoutMethodOutSchema,
    PayoutMethodSchema,
    PayoutRequestSchema,
    WithdrawalSchema,
)
from consult.schemas.wallet_schema import LedgerQuerySchema
from consult.utils.auth_utils import current_actor, role_required
from consult.utils.pagination import paginate_query
from consult.utils.response_formatter import success_response

bp = Blueprint("payouts", __name__, url_prefix="/api/v1")

request_schema = PayoutRequestSchema()
method_schema = PayoutMethodSchema()
withdrawal_schema = WithdrawalSchema()
method_out_schema = PayoutMethodOutSchema()
page_schema = LedgerQuerySchema(only=("page", "limit"))


@bp.route("/payouts", methods=["POST"])
@role_required("provider")
def request_payout():
    data = load_body(request_schema, request.get_json(silent=True))
    uid, _ = current_actor()

    withdrawal, remaining = current_app.container.payouts.request(
        uid,
        data["amount"],
        method=data["method"],
        account_details=data["account_details"],
    )

    return success_response({
        "request_id": withdrawal.id,
        "amount": float(withdrawal.amount),
        "status": withdrawal.status,
        "payment_method": withdrawal.method,
        "remaining_balance": float(remaining),
    }, message="Payout request submitted successfully", status=201)


@bp.route("/payouts/pending", methods=["GET"])
@role_required("provider")
def pending_payout():
    uid, _ = current_actor()
    pending = current_app.container.payouts.get_pending(uid)
    return success_response({
        "pending_payout": withdrawal_schema.dump(pending) if pending else None
    })


@bp.route("/payouts", methods=["GET"])
@role_required("provider")
def list_payouts():
    args = load_body(page_schema, request.args.to_dict())
    uid, _ = current_actor()

    q = current_app.container.payouts.list_query(owner_id=uid)
    items, pagination = paginate_query(q, args["page"], args["limit"])

    return success_response({
        "withdrawals": withdrawal_schema.dump(items, many=True),
        "pagination": pagination,
    })


@bp.route("/payout-methods", methods=["POST"])
@role_required("provider")
def add_payout_method():
    data = load_body(method_schema, request.get_json(silent=True))
    uid, _ = current_actor()

    pm = current_app.container.payouts.add_method(
        uid, data["method"], data["details"], is_default=data["is_default"]
    )
    return success_response({"id": pm.id}, "Payout method added", status=201)


@bp.route("/payout-methods", methods=["GET"])
@role_required("provider")
def list_payout_methods():
    uid, _ = current_actor()
    methods = current_app.container.payouts.list_methods(uid)
    return success_response({"payout_methods": method_out_schema.dump(methods, many=True)})


@bp.route("/payout-methods/<pm_id>/default", methods=["PATCH"])
@role_required("provider")
def set_default_payout_method(pm_id):
    uid, _ = current_actor()
    current_app.container.payouts.set_default(uid, pm_id)
    return success_response({"message": "Default method updated"})

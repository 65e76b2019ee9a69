from flask import Blueprint, current_app, request
from sqlalchemy import or_

from consult.models.user import User
from consult.models.withdrawal_request import WithdrawalRequest
from consult.schemas.common import load_body
from consult.schemas.payout_schema import ResolveWithdrawalSchema
from consult.utils.auth_utils import current_actor, role_required
from consult.utils.money import isoformat
from consult.utils.pagination import paginate_query
from consult.utils.response_formatter import error_response, success_response

bp = Blueprint("admin_payments", __name__, url_prefix="/api/v1/admin")

resolve_schema = ResolveWithdrawalSchema()


# ==========================================================
#  GET /admin/withdrawals
#  Filters:
#    page, limit
#    status=pending|approved|rejected
#    search (provider name or email)
# ==========================================================
@bp.route("/withdrawals", methods=["GET"])
@role_required("admin")
def admin_list_withdrawals():
    try:
        page = max(int(request.args.get("page", 1)), 1)
        limit = min(max(int(request.args.get("limit", 20)), 1), 100)
    except ValueError:
        return error_response("VALIDATION_ERROR", "page and limit must be integers", status=422)
    status = request.args.get("status")
    search = request.args.get("search")

    if status == "approved":
        status = "paid"

    q = current_app.container.payouts.list_query(status=status).join(
        User, User.id == WithdrawalRequest.owner_id
    )
    if search:
        q = q.filter(
            or_(
                User.full_name.ilike(f"%{search}%"),
                User.email.ilike(f"%{search}%")
            )
        )

    items, pagination = paginate_query(q, page, limit)

    return success_response({
        "withdrawals": [
            {
                "id": w.id,
                "amount": float(w.amount),
                "status": w.status,
                "method": w.method,
                "account_details": w.account_details,
                "requested_at": isoformat(w.requested_at),
                "provider": {
                    "id": w.owner.id,
                    "name": w.owner.full_name,
                    "email": w.owner.email,
                }
            }
            for w in items
        ],
        "pagination": pagination,
    })


# ==========================================================
#  PATCH /admin/withdrawals/<id>/approve
# ==========================================================
@bp.route("/withdrawals/<wid>/approve", methods=["PATCH"])
@role_required("admin")
def admin_approve_withdrawal(wid):
    admin_id, _ = current_actor()
    wr = current_app.container.payouts.resolve(wid, admin_id, "approved")
    current_app.logger.info("Withdrawal %s paid by admin %s", wid, admin_id)
    return success_response({
        "id": wr.id,
        "status": wr.status,
        "message": "Withdrawal approved and paid",
    })


# ==========================================================
#  PATCH /admin/withdrawals/<id>/reject
# ==========================================================
@bp.route("/withdrawals/<wid>/reject", methods=["PATCH"])
@role_required("admin")
def admin_reject_withdrawal(wid):
    data = load_body(resolve_schema, request.get_json(silent=True))
    admin_id, _ = current_actor()
    wr = current_app.container.payouts.resolve(wid, admin_id, "rejected", reason=data["reason"])
    current_app.logger.info("Withdrawal %s rejected by admin %s", wid, admin_id)
    return success_response({
        "id": wr.id,
        "status": wr.status,
        "message": "Withdrawal rejected",
    })

from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from consult.schemas.common import load_body
from consult.schemas.wallet_schema import LedgerEntrySchema, LedgerQuerySchema
from consult.utils.auth_utils import current_actor
from consult.utils.pagination import paginate_query
from consult.utils.response_formatter import success_response

bp = Blueprint("wallet", __name__, url_prefix="/api/v1/wallet")

entries_schema = LedgerEntrySchema(many=True)
query_schema = LedgerQuerySchema()


@bp.route("", methods=["GET"])
@jwt_required()
def wallet_summary():
    uid, _ = current_actor()
    return success_response(current_app.container.ledger.get_summary(uid))


@bp.route("/transactions", methods=["GET"])
@jwt_required()
def wallet_transactions():
    args = load_body(query_schema, request.args.to_dict())
    uid, _ = current_actor()

    q = current_app.container.ledger.entries_query(uid, entry_type=args["type"])
    items, pagination = paginate_query(q, args["page"], args["limit"])

    return success_response({
        "transactions": entries_schema.dump(items),
        "pagination": pagination,
    })

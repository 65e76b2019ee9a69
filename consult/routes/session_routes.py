from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from consult.schemas.common import load_body
from consult.schemas.session_schema import (
    SessionActionSchema,
    SessionCreateSchema,
    SessionListQuerySchema,
)
from consult.utils.auth_utils import current_actor, role_required
from consult.utils.money import isoformat
from consult.utils.pagination import paginate_query
from consult.utils.response_formatter import success_response

bp = Blueprint("sessions", __name__, url_prefix="/api/v1/sessions")

create_schema = SessionCreateSchema()
action_schema = SessionActionSchema()
list_schema = SessionListQuerySchema()


# -----------------------------------------------------------
# CREATE (or return the open session for this pair)
# -----------------------------------------------------------
@bp.route("", methods=["POST"])
@role_required("customer")
def create_session():
    data = load_body(create_schema, request.get_json(silent=True))
    uid, _ = current_actor()

    session, created = current_app.container.sessions.create(
        customer_id=uid,
        provider_id=data["provider_id"],
        kind=data["kind"],
    )

    return success_response({
        "session_id": session.id,
        "status": session.status,
        "kind": session.kind,
        "rate_per_minute": float(session.rate_per_minute),
        "start_time": isoformat(session.start_time),
    }, message=None if created else "Session already exists", status=201 if created else 200)


# -----------------------------------------------------------
# LIST MY SESSIONS
# -----------------------------------------------------------
@bp.route("", methods=["GET"])
@jwt_required()
def list_sessions():
    args = load_body(list_schema, request.args.to_dict())
    uid, _ = current_actor()

    q = current_app.container.sessions.list_query(uid, status=args["status"], kind=args["kind"])
    items, pagination = paginate_query(q, args["page"], args["limit"])

    return success_response({
        "sessions": [s.to_dict() for s in items],
        "pagination": pagination,
    })


@bp.route("/<session_id>", methods=["GET"])
@jwt_required()
def get_session(session_id):
    uid, _ = current_actor()
    session = current_app.container.sessions.get(session_id, actor_id=uid)
    return success_response({"session": session.to_dict()})


# -----------------------------------------------------------
# LIFECYCLE ACTIONS: ring / join / end / cancel / reject / add_notes / rate
# -----------------------------------------------------------
@bp.route("/<session_id>/actions", methods=["POST"])
@jwt_required()
def session_action(session_id):
    data = load_body(action_schema, request.get_json(silent=True))
    uid, _ = current_actor()
    action = data["action"]

    session = current_app.container.sessions.transition(
        session_id,
        uid,
        action,
        notes=data["notes"],
        rating=data["rating"],
    )
    current_app.logger.info("Session %s action %s by %s", session_id, action, uid)

    payload = {
        "session_id": session.id,
        "action": action,
        "status": session.status,
        "updated_at": isoformat(session.updated_at),
    }
    if action == "end":
        payload.update({
            "duration_minutes": session.duration_minutes,
            "total_amount": float(session.total_amount),
            "provider_earnings": float(session.provider_earnings),
            "platform_commission": float(session.platform_commission),
        })
    return success_response(payload)

from marshmallow import RAISE, fields, validate

from consult.extensions import ma
from consult.models.consultation_session import OPEN_STATUSES, SESSION_KINDS, TERMINAL_STATUSES
from consult.services.session_service import ALLOWED_FROM, MAX_NOTE_LENGTH


class SessionCreateSchema(ma.Schema):
    class Meta:
        unknown = RAISE

    provider_id = fields.String(required=True, validate=validate.Length(min=1, max=50))
    kind = fields.String(required=True, validate=validate.OneOf(SESSION_KINDS))


class SessionActionSchema(ma.Schema):
    class Meta:
        unknown = RAISE

    action = fields.String(required=True, validate=validate.OneOf(sorted(ALLOWED_FROM)))
    notes = fields.String(load_default=None, validate=validate.Length(min=1, max=MAX_NOTE_LENGTH))
    rating = fields.Integer(strict=True, load_default=None, validate=validate.Range(min=1, max=5))


class SessionListQuerySchema(ma.Schema):
    class Meta:
        unknown = RAISE

    status = fields.String(load_default=None, validate=validate.OneOf(OPEN_STATUSES + TERMINAL_STATUSES))
    kind = fields.String(load_default=None, validate=validate.OneOf(SESSION_KINDS))
    page = fields.Integer(load_default=1, validate=validate.Range(min=1))
    limit = fields.Integer(load_default=20, validate=validate.Range(min=1, max=100))

from marshmallow import RAISE, fields, validate

from consult.extensions import ma
from consult.models.ledger_entry import ENTRY_TYPES


class LedgerEntrySchema(ma.Schema):
    id = fields.String()
    type = fields.String()
    amount = fields.Float()
    status = fields.String()
    description = fields.String()
    session_id = fields.String()
    withdrawal_id = fields.String()
    created_at = fields.DateTime()


class LedgerQuerySchema(ma.Schema):
    class Meta:
        unknown = RAISE

    type = fields.String(load_default=None, validate=validate.OneOf(ENTRY_TYPES))
    page = fields.Integer(load_default=1, validate=validate.Range(min=1))
    limit = fields.Integer(load_default=20, validate=validate.Range(min=1, max=100))

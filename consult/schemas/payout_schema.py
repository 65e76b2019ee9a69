from marshmallow import RAISE, fields, validate

from consult.extensions import ma
from consult.models.payment_method import REQUIRED_DETAILS


class PayoutRequestSchema(ma.Schema):
    class Meta:
        unknown = RAISE

    amount = fields.Decimal(required=True, allow_nan=False)
    method = fields.String(load_default=None, validate=validate.OneOf(list(REQUIRED_DETAILS)))
    account_details = fields.Dict(keys=fields.String(), values=fields.String(), load_default=None)


class PayoutMethodSchema(ma.Schema):
    class Meta:
        unknown = RAISE

    method = fields.String(required=True, validate=validate.OneOf(list(REQUIRED_DETAILS)))
    details = fields.Dict(keys=fields.String(), values=fields.String(), required=True)
    is_default = fields.Boolean(load_default=False)


class ResolveWithdrawalSchema(ma.Schema):
    class Meta:
        unknown = RAISE

    reason = fields.String(load_default=None, validate=validate.Length(max=255))


class WithdrawalSchema(ma.Schema):
    request_id = fields.String(attribute="id")
    amount = fields.Float()
    status = fields.String()
    method = fields.String()
    account_details = fields.Dict()
    requested_at = fields.DateTime()
    processed_at = fields.DateTime()
    rejection_reason = fields.String()


class PayoutMethodOutSchema(ma.Schema):
    id = fields.String()
    method = fields.String()
    details = fields.Dict()
    is_default = fields.Boolean()

from consult.extensions import db
from datetime import datetime
import uuid


def gen_method_id():
    return f"pm-{str(uuid.uuid4())[:8]}"


# fields that must be present for a method to be usable for payouts
REQUIRED_DETAILS = {
    "upi": ("upi_id",),
    "bank_transfer": ("account_holder_name", "account_number", "bank_name", "ifsc_code"),
}


class PayoutMethod(db.Model):
    __tablename__ = "payout_methods"

    id = db.Column(db.String(50), primary_key=True, default=gen_method_id)
    owner_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)
    method = db.Column(db.String(50), nullable=False)
    details = db.Column(db.JSON, nullable=False, default=dict)
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    owner = db.relationship("User", backref="payout_methods", lazy=True)

    @property
    def is_usable(self):
        required = REQUIRED_DETAILS.get(self.method)
        if not required:
            return False
        details = self.details or {}
        return all(str(details.get(k) or "").strip() for k in required)

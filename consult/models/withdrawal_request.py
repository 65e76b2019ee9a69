from consult.extensions import db
from sqlalchemy.sql import func
import uuid


def gen_withdrawal_id():
    return f"wd_{uuid.uuid4().hex[:12]}"


class WithdrawalRequest(db.Model):
    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        # at most one pending request per owner
        db.Index(
            "uq_withdrawal_one_pending",
            "owner_id",
            unique=True,
            postgresql_where=db.text("status = 'pending'"),
            sqlite_where=db.text("status = 'pending'"),
        ),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_withdrawal_id)
    owner_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="pending")
    method = db.Column(db.String(50), nullable=False)
    account_details = db.Column(db.JSON, nullable=False, default=dict)

    requested_at = db.Column(db.DateTime, server_default=func.now())
    processed_at = db.Column(db.DateTime)
    processed_by = db.Column(db.String(50))
    rejection_reason = db.Column(db.String(255))

    owner = db.relationship("User", backref="withdrawals")

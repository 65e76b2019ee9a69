from consult.extensions import db
from sqlalchemy.sql import func
import uuid

ENTRY_TYPES = ("credit", "debit", "withdrawal", "commission")


def gen_entry_id():
    return f"txn_{uuid.uuid4().hex[:12]}"


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("idx_ledger_owner_created", "owner_id", "created_at"),
        # one settlement entry of each kind per session
        db.UniqueConstraint("session_id", "owner_id", "type", name="uq_ledger_session_owner_type"),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_entry_id)
    # NULL owner = platform account (commission)
    owner_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=True)

    type = db.Column(db.String(30), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="completed")
    description = db.Column(db.String(255))

    session_id = db.Column(db.String(50), db.ForeignKey("consultation_sessions.id"), nullable=True)
    withdrawal_id = db.Column(db.String(50), db.ForeignKey("withdrawal_requests.id"), nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now())

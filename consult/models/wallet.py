from consult.extensions import db
from sqlalchemy.sql import func
import uuid


def gen_wallet_id():
    return f"wal_{uuid.uuid4().hex[:12]}"


class Wallet(db.Model):
    __tablename__ = "wallets"
    __table_args__ = (
        db.CheckConstraint("reserved_balance >= 0", name="ck_wallet_reserved_nonneg"),
        db.CheckConstraint("reserved_balance <= balance", name="ck_wallet_reserved_le_balance"),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_wallet_id)
    owner_id = db.Column(db.String(50), db.ForeignKey("users.id"), unique=True, nullable=False)

    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    reserved_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(10), default="INR")

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now())

    owner = db.relationship("User", backref=db.backref("wallet", uselist=False))

    @property
    def available_balance(self):
        return self.balance - self.reserved_balance

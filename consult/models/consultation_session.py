from consult.extensions import db
from datetime import datetime
import uuid

from consult.utils.money import isoformat

SESSION_KINDS = ("chat", "voice_call", "video_call")
CALL_KINDS = ("voice_call", "video_call")

OPEN_STATUSES = ("pending", "ringing", "active")
TERMINAL_STATUSES = ("completed", "cancelled", "rejected")


def gen_session_id():
    return f"ses-{uuid.uuid4().hex[:12]}"


_open_clause = "status IN ('pending', 'ringing', 'active')"


class ConsultationSession(db.Model):
    __tablename__ = "consultation_sessions"

    id = db.Column(db.String(50), primary_key=True, default=gen_session_id)
    kind = db.Column(db.String(20), nullable=False)

    customer_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)
    provider_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="pending")

    # snapshotted at creation
    rate_per_minute = db.Column(db.Numeric(10, 2), nullable=False)
    commission_fraction = db.Column(db.Numeric(5, 4), nullable=False)

    ringing_at = db.Column(db.DateTime)
    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)

    duration_minutes = db.Column(db.Integer)
    total_amount = db.Column(db.Numeric(12, 2))
    provider_earnings = db.Column(db.Numeric(12, 2))
    platform_commission = db.Column(db.Numeric(12, 2))

    customer_rating = db.Column(db.Integer)
    cancel_reason = db.Column(db.String(50))
    cancelled_by = db.Column(db.String(50))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    customer = db.relationship("User", foreign_keys=[customer_id], lazy=True)
    provider = db.relationship("User", foreign_keys=[provider_id], lazy=True)

    __table_args__ = (
        db.Index(
            "uq_session_open_pair",
            "customer_id",
            "provider_id",
            unique=True,
            postgresql_where=db.text(_open_clause),
            sqlite_where=db.text(_open_clause),
        ),
        db.Index("idx_sessions_status_created", "status", "created_at"),
        db.CheckConstraint(
            "customer_rating IS NULL OR (customer_rating >= 1 AND customer_rating <= 5)",
            name="ck_session_rating_range",
        ),
    )

    def is_participant(self, user_id):
        return user_id in (self.customer_id, self.provider_id)

    def to_dict(self):
        def num(v):
            return float(v) if v is not None else None

        return {
            "session_id": self.id,
            "kind": self.kind,
            "customer_id": self.customer_id,
            "provider_id": self.provider_id,
            "status": self.status,
            "rate_per_minute": num(self.rate_per_minute),
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
            "duration_minutes": self.duration_minutes,
            "total_amount": num(self.total_amount),
            "provider_earnings": num(self.provider_earnings),
            "platform_commission": num(self.platform_commission),
            "customer_rating": self.customer_rating,
            "cancel_reason": self.cancel_reason,
            "notes": [n.to_dict() for n in self.notes],
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

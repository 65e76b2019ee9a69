from consult.extensions import db


class RateLimitRecord(db.Model):
    __tablename__ = "rate_limits"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    key = db.Column(db.String(255), unique=True, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)
    window_start = db.Column(db.DateTime, nullable=False, index=True)
    last_request = db.Column(db.DateTime, nullable=False)

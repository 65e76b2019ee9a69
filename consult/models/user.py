from consult.extensions import db
from datetime import datetime
import uuid


def gen_uuid(prefix=None):
    uid = str(uuid.uuid4())
    return f"{prefix}-{uid}" if prefix else uid


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(50), primary_key=True, default=lambda: gen_uuid("usr"))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(50), nullable=False)
    account_status = db.Column(db.String(50), nullable=False, default="active")
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def is_active(self):
        return self.account_status == "active"

from consult.extensions import db
from datetime import datetime
import uuid

from consult.utils.money import isoformat


def gen_note_id():
    return f"note-{str(uuid.uuid4())[:8]}"


class SessionNote(db.Model):
    __tablename__ = "session_notes"

    id = db.Column(db.String(50), primary_key=True, default=gen_note_id)
    session_id = db.Column(db.String(50), db.ForeignKey("consultation_sessions.id"), nullable=False, index=True)
    author_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    session = db.relationship(
        "ConsultationSession",
        backref=db.backref("notes", lazy=True, order_by="SessionNote.created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": isoformat(self.created_at),
        }

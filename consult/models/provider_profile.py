from consult.extensions import db


class ProviderProfile(db.Model):
    """Published rates and availability for a provider.

    Maintained by the provider directory; the session engine only reads it.
    """
    __tablename__ = "provider_profiles"

    user_id = db.Column(db.String(50), db.ForeignKey("users.id"), primary_key=True)

    chat_rate = db.Column(db.Numeric(10, 2))
    voice_call_rate = db.Column(db.Numeric(10, 2))
    video_call_rate = db.Column(db.Numeric(10, 2))

    # None means "use the platform default"
    commission_fraction = db.Column(db.Numeric(5, 4), nullable=True)

    is_online = db.Column(db.Boolean, default=False, nullable=False)
    is_approved = db.Column(db.Boolean, default=False, nullable=False)

    updated_at = db.Column(db.DateTime)

    user = db.relationship("User", backref=db.backref("provider_profile", uselist=False))

    def rate_for(self, kind):
        return getattr(self, f"{kind}_rate", None)

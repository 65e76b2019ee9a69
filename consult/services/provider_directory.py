from dataclasses import dataclass
from decimal import Decimal

from consult.models.provider_profile import ProviderProfile
from consult.models.user import User
from consult.utils.money import to_money


@dataclass(frozen=True)
class ProviderListing:
    provider_id: str
    rate_per_minute: Decimal
    commission_fraction: Decimal
    online: bool
    approved: bool


class ProviderDirectory:
    """Read model over provider profiles: rates, commission and availability."""

    def __init__(self, session, default_rates, default_commission):
        self.session = session
        self.default_rates = default_rates
        self.default_commission = Decimal(str(default_commission))

    def lookup(self, provider_id, kind):
        """Return a listing for ``provider_id`` or None if it is not a provider."""
        user = self.session.get(User, provider_id)
        if not user or user.role != "provider":
            return None
        profile = self.session.get(ProviderProfile, provider_id)
        if not profile:
            return None

        rate = profile.rate_for(kind)
        if rate is None:
            rate = self.default_rates.get(kind, 0)
        commission = profile.commission_fraction
        if commission is None:
            commission = self.default_commission

        return ProviderListing(
            provider_id=provider_id,
            rate_per_minute=to_money(rate),
            commission_fraction=Decimal(str(commission)),
            online=bool(profile.is_online),
            approved=bool(profile.is_approved) and user.is_active,
        )

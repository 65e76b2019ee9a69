from dataclasses import dataclass, field

from consult.services.payout_service import PayoutWorkflow
from consult.services.provider_directory import ProviderDirectory
from consult.services.rate_limiter import RateLimiter
from consult.services.session_service import SessionRegistry
from consult.services.wallet_service import WalletLedger


@dataclass
class Container:
    """Every engine service, wired once per application.

    Handlers reach these through ``current_app.container`` instead of
    importing module-level instances.
    """
    store: object
    config: dict = field(repr=False)

    limiter: RateLimiter = None
    ledger: WalletLedger = None
    directory: ProviderDirectory = None
    sessions: SessionRegistry = None
    payouts: PayoutWorkflow = None

    def __post_init__(self):
        c = self.config
        self.limiter = RateLimiter(
            self.store,
            fail_open_actions=c.get("RATE_LIMIT_FAIL_OPEN_ACTIONS", ()),
            violation_window_seconds=c.get("RATE_LIMIT_VIOLATION_WINDOW_SECONDS", 24 * 60 * 60),
        )
        self.ledger = WalletLedger(self.store, currency=c.get("CURRENCY", "INR"))
        self.directory = ProviderDirectory(
            self.store,
            default_rates=c.get("DEFAULT_RATES", {}),
            default_commission=c.get("PLATFORM_COMMISSION_FRACTION", 0.20),
        )
        self.sessions = SessionRegistry(
            self.store,
            self.ledger,
            self.directory,
            self.limiter,
            minimum_billable_minutes=c.get("MINIMUM_BILLABLE_MINUTES", 5),
            create_limit=c.get("SESSION_CREATE_LIMIT", 3),
            create_window_seconds=c.get("SESSION_CREATE_WINDOW_SECONDS", 3600),
            pending_timeout_seconds=c.get("SESSION_PENDING_TIMEOUT_SECONDS", 300),
            ringing_timeout_seconds=c.get("SESSION_RINGING_TIMEOUT_SECONDS", 60),
        )
        self.payouts = PayoutWorkflow(
            self.store,
            self.ledger,
            self.limiter,
            min_amount=c.get("PAYOUT_MIN_AMOUNT", 100),
            max_amount=c.get("PAYOUT_MAX_AMOUNT", 50000),
            rate_limits=c.get("PAYOUT_REQUEST_LIMITS", [(3, 3600)]),
        )

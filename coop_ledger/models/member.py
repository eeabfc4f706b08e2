"""Member model."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass
class Member:
    """Cooperative member with running contribution balances.

    ``total_shares``, ``total_social_fund_contributions`` and
    ``total_penalties`` are maintained by the ledger; callers never set them
    directly.
    """

    member_id: str
    full_name: str
    join_date: date
    contact_info: str | None = None
    total_shares: Decimal = field(default_factory=lambda: Decimal("0"))
    total_social_fund_contributions: Decimal = field(default_factory=lambda: Decimal("0"))
    total_penalties: Decimal = field(default_factory=lambda: Decimal("0"))
    created_at: datetime | None = None
    updated_at: datetime | None = None

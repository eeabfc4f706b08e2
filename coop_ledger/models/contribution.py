"""Contribution model."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from coop_ledger.models.enums import ContributionType


@dataclass
class Contribution:
    """Share purchase or social-fund deposit made by a member."""

    contribution_id: int
    member_id: str
    contribution_type: ContributionType
    amount: Decimal
    contribution_date: date
    remarks: str | None = None
    created_at: datetime | None = None

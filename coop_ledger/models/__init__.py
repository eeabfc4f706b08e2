"""Ledger domain models."""

from coop_ledger.models.contribution import Contribution
from coop_ledger.models.enums import (
    ContributionType,
    DistributionBasis,
    LoanStatus,
    PaymentType,
)
from coop_ledger.models.loan import Loan, LoanPayment
from coop_ledger.models.member import Member

__all__ = [
    "Contribution",
    "ContributionType",
    "DistributionBasis",
    "Loan",
    "LoanPayment",
    "LoanStatus",
    "Member",
    "PaymentType",
]

"""Pure accounting rules: loans, aggregation and year-end distribution."""

from coop_ledger.accounting.aggregation import (
    LedgerTotals,
    MemberPosition,
    compute_totals,
    member_position,
)
from coop_ledger.accounting.loans import (
    ALLOWED_TRANSITIONS,
    compute_outstanding_balance,
    compute_service_charge,
    new_loan,
    new_payment,
    transition_status,
)
from coop_ledger.accounting.year_end import (
    DistributionReport,
    DistributionSummary,
    MemberDistribution,
    compute_distribution,
    confirm_clear,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DistributionReport",
    "DistributionSummary",
    "LedgerTotals",
    "MemberDistribution",
    "MemberPosition",
    "compute_distribution",
    "compute_outstanding_balance",
    "compute_service_charge",
    "compute_totals",
    "confirm_clear",
    "member_position",
    "new_loan",
    "new_payment",
    "transition_status",
]

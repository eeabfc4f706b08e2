"""Enumeration types for ledger entities."""

from enum import Enum


class LoanStatus(str, Enum):
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentType(str, Enum):
    PRINCIPAL = "PRINCIPAL"
    SERVICE_CHARGE = "SERVICE_CHARGE"


class ContributionType(str, Enum):
    SHARE = "SHARE"
    SOCIAL_FUND = "SOCIAL_FUND"


class DistributionBasis(str, Enum):
    """Which service-charge figure feeds the year-end earnings pool.

    ``ACCRUED`` sums the service charge levied on every loan at creation,
    paid or not. ``PAID_ONLY`` sums the SERVICE_CHARGE payments actually
    collected, matching the dashboard's earnings figure.
    """

    ACCRUED = "ACCRUED"
    PAID_ONLY = "PAID_ONLY"

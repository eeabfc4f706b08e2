"""Sample-data generators."""

from coop_ledger.generators.member import (
    ContributionPlanGenerator,
    MemberGenerator,
    MemberProfile,
)

__all__ = ["ContributionPlanGenerator", "MemberGenerator", "MemberProfile"]

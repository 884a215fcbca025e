"""
Exclusion Evaluator for the Inactivity Engine.

Composes creation-recency, group-membership, department, and domain
predicates into a single exclusion decision per account.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Set

from ..models import Account, ExclusionDecision, ExclusionReason

logger = logging.getLogger(__name__)


def normalize(value: Optional[str]) -> str:
    """Trim and case-fold a directory string for comparison."""
    return (value or "").strip().casefold()


class ExclusionEvaluator:
    """
    Decides whether an account is excluded from a lifecycle stage.

    Checks run in a fixed order and stop at the first hit:
    creation recency, exclusion group, department (member stages only),
    then domain. The order only changes the reported reason.
    """

    def __init__(
        self,
        now: datetime,
        threshold_days: int,
        group_member_ids: Optional[Iterable[str]] = None,
        excluded_domains: Optional[Iterable[str]] = None,
        excluded_departments: Optional[Iterable[str]] = None,
        check_departments: bool = True,
    ):
        """
        Initialize the evaluator with pre-fetched exclusion sets.

        Args:
            now: Reference instant for the run
            threshold_days: Inactivity threshold, also the new-account grace period
            group_member_ids: Member ids of the exclusion group
            excluded_domains: Domains matched as substrings of UPN or mail
            excluded_departments: Department names excluded from member stages
            check_departments: False for guest stages
        """
        self.now = now
        self.threshold = timedelta(days=threshold_days)
        self.group_member_ids: Set[str] = set(group_member_ids or [])
        self.excluded_domains = [d for d in (normalize(x) for x in excluded_domains or []) if d]
        self.excluded_departments: Set[str] = {
            d for d in (normalize(x) for x in excluded_departments or []) if d
        }
        self.check_departments = check_departments

    def evaluate(self, account: Account) -> ExclusionDecision:
        """
        Evaluate all exclusion predicates for an account.

        Args:
            account: Account to evaluate

        Returns:
            ExclusionDecision with the first matching reason
        """
        if account.created_at is None:
            logger.warning(f"Account {account.user_principal_name} has no creation date, "
                           "skipping creation-recency check")
        elif self.now - account.created_at < self.threshold:
            return ExclusionDecision(
                excluded=True,
                reason=ExclusionReason.CREATION_RECENCY,
                detail=f"created {account.created_at.isoformat()}",
            )

        if account.id in self.group_member_ids:
            return ExclusionDecision(
                excluded=True,
                reason=ExclusionReason.GROUP_MEMBERSHIP,
                detail="member of exclusion group",
            )

        if self.check_departments and self.excluded_departments:
            department = normalize(account.department)
            if department and department in self.excluded_departments:
                return ExclusionDecision(
                    excluded=True,
                    reason=ExclusionReason.DEPARTMENT,
                    detail=f"department '{account.department}'",
                )

        # Substring, not suffix: "example.org" also excludes "example.org.uk"
        principal = normalize(account.user_principal_name)
        mail = normalize(account.mail)
        for domain in self.excluded_domains:
            if domain in principal or (mail and domain in mail):
                return ExclusionDecision(
                    excluded=True,
                    reason=ExclusionReason.DOMAIN,
                    detail=f"domain '{domain}'",
                )

        return ExclusionDecision(excluded=False)

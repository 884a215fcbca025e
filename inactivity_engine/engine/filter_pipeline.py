"""
Filter Pipeline for the Inactivity Engine.

Orchestrates account retrieval, sequential exclusion filtering, license
matching, and inactivity classification for one lifecycle stage.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..connectors.base_connector import BaseDirectoryConnector, DirectoryError
from ..models import (
    Account,
    AccountFilter,
    Candidate,
    ExclusionReason,
    FilterCounts,
    StageConfig,
)
from .activity_resolver import resolve_activity
from .exclusion_evaluator import ExclusionEvaluator
from .license_matcher import LicenseMatcher

logger = logging.getLogger(__name__)

# Principal names of accounts projected from another tenant carry this marker
FEDERATION_MARKER = "#EXT#"

CATALOG_FAILURE_DEGRADE = "degrade"
CATALOG_FAILURE_FAIL = "fail"


class RetrievalError(Exception):
    """Every retrieval strategy failed; no snapshot can be trusted."""


class RetrievalResult(BaseModel):
    """Outcome of one retrieval strategy."""
    strategy: str
    accounts: List[Account] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RetrievalStrategy(ABC):
    """A way of retrieving the accounts that match a structural filter."""

    name = "base"

    @abstractmethod
    def retrieve(self, connector: BaseDirectoryConnector, account_filter: AccountFilter) -> RetrievalResult:
        """Retrieve matching accounts, reporting failure in the result."""
        pass


class ServerFilteredRetrieval(RetrievalStrategy):
    """Ask the directory to evaluate the filter."""

    name = "server"

    def retrieve(self, connector: BaseDirectoryConnector, account_filter: AccountFilter) -> RetrievalResult:
        try:
            accounts = connector.list_accounts(account_filter)
        except DirectoryError as e:
            return RetrievalResult(strategy=self.name, error=str(e))
        # The local predicate is re-applied so both strategies agree exactly
        return RetrievalResult(
            strategy=self.name,
            accounts=[a for a in accounts if account_filter.matches(a)],
        )


class ClientFilteredRetrieval(RetrievalStrategy):
    """List every account and evaluate the filter locally."""

    name = "client"

    def retrieve(self, connector: BaseDirectoryConnector, account_filter: AccountFilter) -> RetrievalResult:
        try:
            accounts = connector.list_accounts(None)
        except DirectoryError as e:
            return RetrievalResult(strategy=self.name, error=str(e))
        return RetrievalResult(
            strategy=self.name,
            accounts=[a for a in accounts if account_filter.matches(a)],
        )


class AccountRetriever:
    """Tries retrieval strategies in order and returns the first success."""

    def __init__(self, strategies: Optional[Sequence[RetrievalStrategy]] = None):
        self.strategies = list(strategies or [ServerFilteredRetrieval(), ClientFilteredRetrieval()])

    def retrieve(self, connector: BaseDirectoryConnector, account_filter: AccountFilter) -> RetrievalResult:
        """
        Retrieve the accounts matching a filter.

        Raises:
            RetrievalError: If every strategy failed
        """
        errors = []
        for strategy in self.strategies:
            result = strategy.retrieve(connector, account_filter)
            if result.ok:
                if errors:
                    logger.warning(f"Retrieved accounts via {result.strategy} fallback after: {'; '.join(errors)}")
                return result
            logger.warning(f"Account retrieval via {strategy.name} filter failed: {result.error}")
            errors.append(f"{strategy.name}: {result.error}")

        raise RetrievalError(f"All retrieval strategies failed ({'; '.join(errors)})")


class PipelineResult(BaseModel):
    """Candidates plus observability data for one pipeline run."""
    candidates: List[Candidate] = Field(default_factory=list)
    counts: FilterCounts = Field(default_factory=FilterCounts)
    retrieval_strategy: str
    warnings: List[str] = Field(default_factory=list)


class FilterPipeline:
    """
    Produces the candidate list for one lifecycle stage.

    Each step is a set reduction over the snapshot returned by retrieval,
    so the candidates are always a subset of the retrieved accounts.
    """

    def __init__(
        self,
        connector: BaseDirectoryConnector,
        stage: StageConfig,
        retriever: Optional[AccountRetriever] = None,
        product_names: Optional[Dict[str, str]] = None,
        catalog_failure_policy: str = CATALOG_FAILURE_DEGRADE,
    ):
        """
        Initialize the pipeline.

        Args:
            connector: Connected directory connector
            stage: Stage configuration
            retriever: Retrieval strategies; defaults to server then client filtering
            product_names: SKU part number to product name table
            catalog_failure_policy: "degrade" or "fail"
        """
        if catalog_failure_policy not in (CATALOG_FAILURE_DEGRADE, CATALOG_FAILURE_FAIL):
            raise ValueError(f"Unknown catalog failure policy: {catalog_failure_policy}")

        self.connector = connector
        self.stage = stage
        self.retriever = retriever or AccountRetriever()
        self.product_names = product_names or {}
        self.catalog_failure_policy = catalog_failure_policy
        self.warnings: List[str] = []

    def _warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def _fetch_exclusion_group_members(self) -> List[str]:
        """Fetch the exclusion group membership once, degrading on failure."""
        name = self.stage.exclusion_group
        if not name:
            return []

        try:
            group = self.connector.get_group_by_name(name)
            if group is None:
                self._warn(f"Exclusion group '{name}' not found; group exclusion disabled for this run")
                return []
            members = self.connector.list_group_members(group.id)
        except DirectoryError as e:
            self._warn(f"Exclusion group '{name}' lookup failed; group exclusion disabled for this run: {e}")
            return []

        logger.info(f"Exclusion group '{name}' has {len(members)} members")
        return members

    def _build_license_matcher(self) -> LicenseMatcher:
        # Without an include-list the catalog only feeds report names
        fail = self.catalog_failure_policy == CATALOG_FAILURE_FAIL and bool(self.stage.license_include_list)
        matcher = LicenseMatcher.build(self.connector, self.product_names, fail_on_error=fail)
        if matcher.degraded and self.stage.license_include_list:
            self._warn("License catalog build failed; license filter disabled for this run")
        return matcher

    def run(self, now: Optional[datetime] = None) -> PipelineResult:
        """
        Run the pipeline.

        Args:
            now: Reference instant; defaults to the current UTC time

        Returns:
            PipelineResult with candidates and per-step counts

        Raises:
            RetrievalError: If the accounts cannot be retrieved at all
            LicenseCatalogError: If the catalog fails under the "fail" policy
                while the stage has a license include-list
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        stage = self.stage
        counts = FilterCounts()
        self.warnings = []

        logger.info(f"Running filter pipeline for stage '{stage.name}' "
                    f"({stage.kind.value}, {stage.enabled_state.value}, {stage.threshold_days} days)")

        # 1. Retrieval
        account_filter = AccountFilter(kind=stage.kind, enabled_state=stage.enabled_state)
        retrieval = self.retriever.retrieve(self.connector, account_filter)
        accounts = retrieval.accounts
        counts.retrieved = len(accounts)

        # 2. Cross-tenant federation artifacts (member stages only)
        if stage.is_member_stage:
            kept = [a for a in accounts if FEDERATION_MARKER not in a.user_principal_name.upper()]
            counts.excluded_federated = len(accounts) - len(kept)
            accounts = kept

        # 3. Exclusions
        evaluator = ExclusionEvaluator(
            now=now,
            threshold_days=stage.threshold_days,
            group_member_ids=self._fetch_exclusion_group_members(),
            excluded_domains=stage.excluded_domains,
            excluded_departments=stage.excluded_departments,
            check_departments=stage.is_member_stage,
        )
        reason_counters = {
            ExclusionReason.CREATION_RECENCY: "excluded_by_creation",
            ExclusionReason.GROUP_MEMBERSHIP: "excluded_by_group",
            ExclusionReason.DEPARTMENT: "excluded_by_department",
            ExclusionReason.DOMAIN: "excluded_by_domain",
        }
        eligible: List[Account] = []
        for account in accounts:
            decision = evaluator.evaluate(account)
            if decision.excluded:
                field_name = reason_counters[decision.reason]
                setattr(counts, field_name, getattr(counts, field_name) + 1)
                logger.debug(f"Excluded {account.user_principal_name}: {decision.reason.value} ({decision.detail})")
                continue
            eligible.append(account)

        # 4. Licensing (member stages only)
        matcher = LicenseMatcher({})
        if stage.is_member_stage:
            matcher = self._build_license_matcher()
            if not matcher.degraded:
                licensed = [a for a in eligible if matcher.matches(a, stage.license_include_list)]
                counts.excluded_by_license = len(eligible) - len(licensed)
                eligible = licensed

        # 5. Inactivity classification
        cutoff = now - timedelta(days=stage.threshold_days)
        candidates: List[Candidate] = []
        for account in eligible:
            resolution = resolve_activity(account.activity, account.id)
            if resolution.last_activity is not None and resolution.last_activity >= cutoff:
                counts.still_active += 1
                continue

            inactive_days = None
            if resolution.last_activity is not None:
                inactive_days = (now - resolution.last_activity).days
            candidates.append(Candidate(
                account=account,
                last_activity=resolution.last_activity,
                activity_source=resolution.source,
                inactive_days=inactive_days,
                license_names=matcher.license_names(account),
            ))

        counts.candidates = len(candidates)
        logger.info(f"Stage '{stage.name}': {counts.retrieved} retrieved via {retrieval.strategy} filter, "
                    f"{counts.candidates} candidates")

        return PipelineResult(
            candidates=candidates,
            counts=counts,
            retrieval_strategy=retrieval.strategy,
            warnings=list(self.warnings),
        )

"""
Lifecycle Actuator for the Inactivity Engine.

Applies the configured lifecycle action to each candidate independently.
"""

import logging
from typing import Callable, Optional, Sequence

from ..audit.audit_logger import AuditLogger
from ..connectors import BaseDirectoryConnector, ConnectorResult
from ..models import ActuationResult, Candidate, LifecycleAction
from .base_workflow import StepExecutor, WorkflowStep

logger = logging.getLogger(__name__)


class LifecycleActuator(StepExecutor):
    """
    Disables or soft-deletes candidates, one at a time.

    ``LifecycleAction.NONE`` behaves like a dry run: candidates are logged
    as would-be actions and counted as succeeded.
    """

    def __init__(
        self,
        connector: BaseDirectoryConnector,
        action: LifecycleAction,
        dry_run: bool = False,
        audit_logger: Optional[AuditLogger] = None,
        run_id: Optional[str] = None,
        stage_name: str = "",
    ):
        super().__init__(
            connector,
            dry_run=dry_run or action == LifecycleAction.NONE,
            audit_logger=audit_logger,
            run_id=run_id,
            stage_name=stage_name,
        )
        self.action = LifecycleAction(action)

    def _operation_for(self, candidate: Candidate) -> Callable[[], ConnectorResult]:
        """Map the action to the connector call for one candidate."""
        account_id = candidate.account.id
        if self.action == LifecycleAction.DISABLE:
            return lambda: self.connector.set_account_enabled(account_id, False)
        elif self.action == LifecycleAction.SOFT_DELETE:
            return lambda: self.connector.remove_account(account_id)
        elif self.action == LifecycleAction.NONE:
            return lambda: ConnectorResult(True, f"No action for {account_id}")
        else:
            raise ValueError(f"Unhandled lifecycle action: {self.action}")

    def apply(self, candidates: Sequence[Candidate]) -> ActuationResult:
        """
        Apply the action to every candidate.

        Args:
            candidates: Candidates produced by the filter pipeline

        Returns:
            ActuationResult with aggregate counts and failures
        """
        logger.info(f"Applying '{self.action.value}' to {len(candidates)} candidates "
                    f"(dry_run={self.dry_run})")

        result = ActuationResult(action=self.action, dry_run=self.dry_run, total=len(candidates))

        for candidate in candidates:
            account = candidate.account
            step = WorkflowStep(
                operation=self.action.value,
                item_id=account.id,
                principal_name=account.user_principal_name,
            )
            if self._execute_step(step, self._operation_for(candidate)):
                result.succeeded += 1
            else:
                result.failed += 1
                result.failures.append(step.to_failure())

        logger.info(f"Action '{self.action.value}' complete: {result.succeeded} succeeded, {result.failed} failed")
        return result

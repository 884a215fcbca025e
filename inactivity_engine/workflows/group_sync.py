"""
Group Synchronizer for the Inactivity Engine.

Rebuilds a review group so its membership is exactly the current
candidate set: every prior member is removed, then every candidate added.
"""

import logging
from typing import Iterable, List, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BaseDirectoryConnector, DirectoryError
from ..models import GroupSyncResult
from .base_workflow import StepExecutor, WorkflowStep

logger = logging.getLogger(__name__)


class GroupSynchronizer(StepExecutor):
    """
    Clear-then-add resynchronization of a target group.

    A full clear, not a diff, so manual edits between runs never survive.
    The add phase works from local bookkeeping and never re-reads the group.
    """

    def __init__(
        self,
        connector: BaseDirectoryConnector,
        dry_run: bool = False,
        audit_logger: Optional[AuditLogger] = None,
        run_id: Optional[str] = None,
        stage_name: str = "",
    ):
        super().__init__(connector, dry_run=dry_run, audit_logger=audit_logger,
                         run_id=run_id, stage_name=stage_name)
        self.warnings: List[str] = []

    def _warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def sync(self, group_name: Optional[str], candidate_ids: Iterable[str]) -> GroupSyncResult:
        """
        Make the group's membership equal to the candidate set.

        Args:
            group_name: Target group display name; empty skips the step
            candidate_ids: Candidate account ids, in order

        Returns:
            GroupSyncResult with removal/addition counts
        """
        result = GroupSyncResult(group_name=group_name or "", dry_run=self.dry_run)
        if not group_name:
            result.skipped = True
            logger.info("No target group configured, skipping group synchronization")
            return result

        # Duplicates dropped, order kept
        new_members = list(dict.fromkeys(candidate_ids))

        try:
            group = self.connector.get_group_by_name(group_name)
        except DirectoryError as e:
            self._warn(f"Target group '{group_name}' lookup failed, skipping synchronization: {e}")
            result.skipped = True
            return result

        prior_members: List[str] = []
        if group is None:
            if self.dry_run:
                logger.info(f"[dry-run] Would create target group '{group_name}'")
                result.added = len(new_members)
                return result
            try:
                group = self.connector.create_group(group_name)
            except DirectoryError as e:
                self._warn(f"Target group '{group_name}' could not be created, skipping synchronization: {e}")
                result.skipped = True
                return result
            result.created = True
            logger.info(f"Created target group '{group_name}' ({group.id})")
        else:
            try:
                prior_members = self.connector.list_group_members(group.id)
            except DirectoryError as e:
                self._warn(f"Could not read members of '{group_name}', stale members are kept: {e}")

        result.group_id = group.id
        logger.info(f"Synchronizing '{group_name}': removing {len(prior_members)}, adding {len(new_members)}")

        for member_id in prior_members:
            step = WorkflowStep(operation="remove_group_member", item_id=member_id, target=group.id)
            if self._execute_step(step, lambda m=member_id: self.connector.remove_group_member(group.id, m)):
                result.removed += 1
            else:
                result.failed_to_remove += 1
                result.failures.append(step.to_failure())

        for member_id in new_members:
            step = WorkflowStep(operation="add_group_member", item_id=member_id, target=group.id)
            if self._execute_step(step, lambda m=member_id: self.connector.add_group_member(group.id, m)):
                result.added += 1
            else:
                result.failed_to_add += 1
                result.failures.append(step.to_failure())

        logger.info(f"Group '{group_name}' synchronized: {result.removed} removed, {result.added} added, "
                    f"{result.failed_to_remove + result.failed_to_add} failures")
        return result

"""
Base Workflow Classes for the Inactivity Engine.

This module provides per-item step execution shared by the lifecycle
actuator and the group synchronizer: every directory mutation is a
WorkflowStep whose failure is recorded without stopping the run.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BaseDirectoryConnector, ConnectorResult
from ..models import AuditRecord, ItemFailure

logger = logging.getLogger(__name__)


class WorkflowStep:
    """Represents a single per-item operation."""

    def __init__(
        self,
        operation: str,
        item_id: str,
        principal_name: Optional[str] = None,
        target: Optional[str] = None,
    ):
        self.operation = operation
        self.item_id = item_id
        self.principal_name = principal_name
        self.target = target
        self.executed_at: Optional[datetime] = None
        self.success: bool = False
        self.skipped: bool = False
        self.error: Optional[str] = None
        self.result: Optional[Any] = None

    def mark_success(self, result: Any = None):
        """Mark step as successful."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = True
        self.result = result

    def mark_skipped(self):
        """Mark step as intentionally not executed (dry run)."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = True
        self.skipped = True

    def mark_failure(self, error: str):
        """Mark step as failed."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = False
        self.error = error

    def to_failure(self) -> ItemFailure:
        return ItemFailure(
            item_id=self.item_id,
            principal_name=self.principal_name,
            operation=self.operation,
            error=self.error or "Unknown error",
        )


class StepExecutor:
    """
    Executes directory mutations one item at a time.

    A failed item, whether reported through an unsuccessful ConnectorResult
    or raised as an exception, is recorded and never aborts the loop.
    """

    def __init__(
        self,
        connector: BaseDirectoryConnector,
        dry_run: bool = False,
        audit_logger: Optional[AuditLogger] = None,
        run_id: Optional[str] = None,
        stage_name: str = "",
    ):
        """
        Initialize the executor.

        Args:
            connector: Connected directory connector
            dry_run: If True, no mutating call is made
            audit_logger: Optional audit trail for every step
            run_id: Identifier of the stage run
            stage_name: Stage name recorded in the audit trail
        """
        self.connector = connector
        self.dry_run = dry_run
        self.audit_logger = audit_logger
        self.run_id = run_id or str(uuid.uuid4())
        self.stage_name = stage_name
        self.steps: List[WorkflowStep] = []
        self.errors: List[str] = []

    def _execute_step(self, step: WorkflowStep, call: Callable[[], ConnectorResult]) -> bool:
        """
        Execute a single step.

        Args:
            step: The step to execute
            call: Zero-argument callable performing the mutation

        Returns:
            True if successful, False otherwise
        """
        self.steps.append(step)

        if self.dry_run:
            step.mark_skipped()
            logger.info(f"[dry-run] Would {step.operation} {step.principal_name or step.item_id}")
            self._log_audit_event(step)
            return True

        try:
            result = call()
            if result.success:
                step.mark_success(result.data)
                logger.info(f"Step completed: {step.operation}({step.principal_name or step.item_id})")
            else:
                step.mark_failure(result.error or result.message or "Unknown error")
                self.errors.append(f"{step.operation} {step.item_id}: {step.error}")
                logger.error(f"Step failed: {step.operation}({step.principal_name or step.item_id}): {step.error}")
        except Exception as e:
            step.mark_failure(f"{type(e).__name__}: {e}")
            self.errors.append(f"{step.operation} {step.item_id}: {step.error}")
            logger.error(f"Exception during {step.operation}({step.principal_name or step.item_id}): {e}")

        self._log_audit_event(step)
        return step.success

    def _log_audit_event(self, step: WorkflowStep) -> Optional[str]:
        """Record a step in the audit trail, if one is configured."""
        if self.audit_logger is None:
            return None

        record = AuditRecord(
            id=str(uuid.uuid4()),
            run_id=self.run_id,
            stage=self.stage_name,
            action=step.operation,
            account_id=step.item_id,
            principal_name=step.principal_name,
            target=step.target,
            dry_run=step.skipped,
            success=step.success,
            error_message=step.error,
        )
        return self.audit_logger.log_event(record)

    def get_execution_summary(self) -> Dict[str, Any]:
        """Get summary of executed steps."""
        successful_steps = len([s for s in self.steps if s.success])
        total_steps = len(self.steps)

        return {
            "run_id": self.run_id,
            "executor": self.__class__.__name__,
            "dry_run": self.dry_run,
            "total_steps": total_steps,
            "successful_steps": successful_steps,
            "failed_steps": total_steps - successful_steps,
            "errors": self.errors.copy(),
        }

"""
Inactivity Workflow for the Inactivity Engine.

Runs one lifecycle stage end to end: opens the directory session, runs the
filter pipeline, applies the stage action, resynchronizes the review group,
and returns the structured run summary with the candidate list.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from ..audit import AuditLogger, ReportStore
from ..config import EngineSettings
from ..connectors import BaseDirectoryConnector
from ..engine.filter_pipeline import FilterPipeline
from ..engine.license_matcher import load_product_names
from ..models import StageConfig, StageRunResult
from .group_sync import GroupSynchronizer
from .lifecycle_actuator import LifecycleActuator

logger = logging.getLogger(__name__)


class InactivityWorkflow:
    """
    Workflow for a single lifecycle stage invocation.

    Fatal errors (connection failure, retrieval failure after fallback, and
    a license catalog failure under the "fail" policy) propagate to the
    caller. Degraded and per-item failures end up in the summary instead.
    """

    def __init__(
        self,
        settings: EngineSettings,
        connector: BaseDirectoryConnector,
        audit_logger: Optional[AuditLogger] = None,
        report_store: Optional[ReportStore] = None,
    ):
        """
        Initialize the workflow.

        Args:
            settings: Engine settings
            connector: Directory connector, not yet connected
            audit_logger: Audit trail; built from settings.audit_dir when omitted
            report_store: Candidate export store; built from settings.report_dir when omitted
        """
        self.settings = settings
        self.connector = connector
        self.run_id = str(uuid.uuid4())

        if audit_logger is None and settings.audit_dir:
            audit_logger = AuditLogger(settings.audit_dir)
        if report_store is None and settings.report_dir:
            report_store = ReportStore(settings.report_dir)
        self.audit_logger = audit_logger
        self.report_store = report_store
        self.product_names: Dict[str, str] = load_product_names(settings.sku_names_file)

        logger.info(f"Initialized {self.__class__.__name__} run {self.run_id}")

    def execute(self, stage: StageConfig, dry_run: bool = False, now: Optional[datetime] = None,
                export_format: Optional[str] = None) -> StageRunResult:
        """
        Execute one stage.

        Args:
            stage: Stage configuration
            dry_run: Report what would happen without mutating the directory
            now: Reference instant; defaults to the current UTC time
            export_format: "csv" or "json" to export the candidates

        Returns:
            StageRunResult with summary and candidates
        """
        now = now or datetime.now(timezone.utc)
        result = StageRunResult(
            run_id=self.run_id,
            stage=stage.name,
            started_at=datetime.now(timezone.utc),
            dry_run=dry_run,
        )
        logger.info(f"Starting stage '{stage.name}' (action={stage.action.value}, dry_run={dry_run})")

        with self.connector:
            result.context = self.connector.get_context()
            logger.info(f"Connected to tenant {result.context.tenant_name or result.context.tenant_id}")

            pipeline = FilterPipeline(
                self.connector,
                stage,
                product_names=self.product_names,
                catalog_failure_policy=self.settings.license_catalog_failure,
            )
            pipeline_result = pipeline.run(now=now)
            result.candidates = pipeline_result.candidates
            result.counts = pipeline_result.counts
            result.retrieval_strategy = pipeline_result.retrieval_strategy
            result.warnings.extend(pipeline_result.warnings)

            actuator = LifecycleActuator(
                self.connector,
                stage.action,
                dry_run=dry_run,
                audit_logger=self.audit_logger,
                run_id=self.run_id,
                stage_name=stage.name,
            )
            result.actuation = actuator.apply(result.candidates)

            if stage.target_group:
                synchronizer = GroupSynchronizer(
                    self.connector,
                    dry_run=dry_run,
                    audit_logger=self.audit_logger,
                    run_id=self.run_id,
                    stage_name=stage.name,
                )
                result.group_sync = synchronizer.sync(
                    stage.target_group, [c.account.id for c in result.candidates]
                )
                result.warnings.extend(synchronizer.warnings)

        if export_format:
            if self.report_store is None:
                result.warnings.append("Export requested but no report_dir is configured")
                logger.warning("Export requested but no report_dir is configured")
            else:
                result.report_path = self.report_store.write_candidates(
                    stage.name, self.run_id, result.candidates, export_format
                )

        result.completed_at = datetime.now(timezone.utc)
        logger.info(f"Completed stage '{stage.name}': {result.counts.candidates} candidates, "
                    f"{result.error_count} errors, {len(result.warnings)} warnings")
        return result

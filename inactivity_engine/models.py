"""
Core data models for the Inactivity Engine.

This module defines the Pydantic models used throughout the system
for directory accounts, lifecycle stages, candidates, and run summaries.
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_directory_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a directory timestamp into an aware UTC datetime.

    Args:
        value: ISO-8601 string (``Z`` suffix allowed) or datetime

    Returns:
        Aware datetime, or None when the value is empty

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # fromisoformat before 3.11 only accepts 3 or 6 fractional digits; Graph sends 1 to 7
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class AccountKind(str, Enum):
    """Directory account kinds handled by lifecycle stages."""
    MEMBER = "Member"
    GUEST = "Guest"


class EnabledState(str, Enum):
    """Enabled-state filter applied during account retrieval."""
    ENABLED = "enabled"
    DISABLED = "disabled"
    ANY = "any"


class LifecycleAction(str, Enum):
    """Action applied to every candidate of a stage."""
    DISABLE = "disable"
    SOFT_DELETE = "soft_delete"
    NONE = "none"


class ActivitySource(str, Enum):
    """Raw activity timestamp sources, in resolution order."""
    INTERACTIVE = "interactive"
    NON_INTERACTIVE = "non_interactive"
    LAST_SUCCESSFUL = "last_successful"


class ExclusionReason(str, Enum):
    """Why an account was excluded from a stage."""
    CREATION_RECENCY = "creation_recency"
    GROUP_MEMBERSHIP = "group_membership"
    DEPARTMENT = "department"
    DOMAIN = "domain"


class ActivityTimestamps(BaseModel):
    """Raw, unparsed sign-in timestamps as reported by the directory."""
    model_config = ConfigDict(frozen=True)

    last_sign_in: Optional[str] = Field(None, description="Last interactive sign-in")
    last_non_interactive_sign_in: Optional[str] = Field(None, description="Last non-interactive sign-in")
    last_successful_sign_in: Optional[str] = Field(None, description="Last successful authentication")

    def by_source(self) -> Dict[ActivitySource, Optional[str]]:
        """Map each activity source to its raw value."""
        return {
            ActivitySource.INTERACTIVE: self.last_sign_in,
            ActivitySource.NON_INTERACTIVE: self.last_non_interactive_sign_in,
            ActivitySource.LAST_SUCCESSFUL: self.last_successful_sign_in,
        }


class Account(BaseModel):
    """Directory identity snapshot taken at pipeline start."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable directory object identifier")
    user_principal_name: str = Field(..., description="Principal name (UPN)")
    display_name: str = Field("", description="Display name")
    mail: Optional[str] = Field(None, description="Primary email address")
    kind: AccountKind = Field(AccountKind.MEMBER, description="Member or Guest")
    enabled: bool = Field(True, description="Whether sign-in is enabled")
    created_at: Optional[datetime] = Field(None, description="Creation instant")
    department: Optional[str] = Field(None, description="Department")
    assigned_licenses: List[str] = Field(default_factory=list, description="Assigned SKU identifiers")
    activity: ActivityTimestamps = Field(default_factory=ActivityTimestamps)

    @field_validator("created_at", mode="before")
    @classmethod
    def validate_created_at(cls, v: Any) -> Optional[datetime]:
        """Accept ISO strings and coerce naive datetimes to UTC."""
        return parse_directory_datetime(v)

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "Account":
        """
        Build an Account from a Microsoft Graph user resource.

        Args:
            payload: JSON object returned by the /users endpoint

        Returns:
            Parsed Account
        """
        sign_in = payload.get("signInActivity") or {}
        created_raw = payload.get("createdDateTime")
        try:
            created_at = parse_directory_datetime(created_raw)
        except ValueError:
            logger.warning(f"Unparseable createdDateTime '{created_raw}' for {payload.get('id')}")
            created_at = None

        kind_raw = payload.get("userType") or AccountKind.MEMBER.value
        try:
            kind = AccountKind(kind_raw)
        except ValueError:
            logger.warning(f"Unknown userType '{kind_raw}' for {payload.get('id')}, treating as Member")
            kind = AccountKind.MEMBER

        return cls(
            id=payload["id"],
            user_principal_name=payload.get("userPrincipalName") or "",
            display_name=payload.get("displayName") or "",
            mail=payload.get("mail"),
            kind=kind,
            enabled=bool(payload.get("accountEnabled", True)),
            created_at=created_at,
            department=payload.get("department"),
            assigned_licenses=[
                lic["skuId"] for lic in payload.get("assignedLicenses") or [] if lic.get("skuId")
            ],
            activity=ActivityTimestamps(
                last_sign_in=sign_in.get("lastSignInDateTime"),
                last_non_interactive_sign_in=sign_in.get("lastNonInteractiveSignInDateTime"),
                last_successful_sign_in=sign_in.get("lastSuccessfulSignInDateTime"),
            ),
        )


class AccountFilter(BaseModel):
    """Structural account filter: kind plus enabled state."""
    model_config = ConfigDict(frozen=True)

    kind: AccountKind
    enabled_state: EnabledState = EnabledState.ANY

    def matches(self, account: Account) -> bool:
        """Evaluate the filter locally against an account."""
        if account.kind != self.kind:
            return False
        if self.enabled_state == EnabledState.ENABLED:
            return account.enabled
        if self.enabled_state == EnabledState.DISABLED:
            return not account.enabled
        return True


class Group(BaseModel):
    """Directory group reference."""
    id: str
    display_name: str


class LicenseSku(BaseModel):
    """Subscribed SKU as listed by the directory."""
    sku_id: str = Field(..., description="Opaque SKU identifier")
    sku_part_number: Optional[str] = Field(None, description="SKU part number, e.g. ENTERPRISEPACK")


class DirectoryContext(BaseModel):
    """Tenant and identity metadata for the current connection."""
    tenant_id: str
    tenant_name: Optional[str] = None
    identity: Optional[str] = None


class ActivityResolution(BaseModel):
    """Resolved last-activity instant for an account."""
    last_activity: Optional[datetime] = Field(None, description="None means never signed in")
    source: Optional[ActivitySource] = None
    missing_sources: List[ActivitySource] = Field(default_factory=list)
    unparseable_sources: List[ActivitySource] = Field(default_factory=list)

    @property
    def never(self) -> bool:
        return self.last_activity is None


class ExclusionDecision(BaseModel):
    """Outcome of evaluating the exclusion predicates for one account."""
    excluded: bool
    reason: Optional[ExclusionReason] = None
    detail: str = ""


class Candidate(BaseModel):
    """An account that met the inactivity threshold for a stage."""
    account: Account
    last_activity: Optional[datetime] = None
    activity_source: Optional[ActivitySource] = None
    inactive_days: Optional[int] = Field(None, description="None when the account never signed in")
    license_names: List[str] = Field(default_factory=list)

    @property
    def never_signed_in(self) -> bool:
        return self.last_activity is None

    def to_record(self) -> Dict[str, Any]:
        """Flatten the candidate for export."""
        account = self.account
        return {
            "id": account.id,
            "user_principal_name": account.user_principal_name,
            "display_name": account.display_name,
            "mail": account.mail or "",
            "kind": account.kind.value,
            "enabled": account.enabled,
            "department": account.department or "",
            "created_at": account.created_at.isoformat() if account.created_at else "",
            "last_activity": self.last_activity.isoformat() if self.last_activity else "never",
            "activity_source": self.activity_source.value if self.activity_source else "",
            "inactive_days": self.inactive_days if self.inactive_days is not None else "",
            "licenses": ";".join(self.license_names),
        }


class StageConfig(BaseModel):
    """Configuration of a single lifecycle stage (runbook)."""
    name: str = Field(..., description="Stage name")
    description: Optional[str] = Field(None, description="Human-readable description")
    kind: AccountKind = Field(..., description="Account kind processed by the stage")
    enabled_state: EnabledState = Field(EnabledState.ENABLED, description="Enabled-state filter")
    threshold_days: int = Field(90, ge=1, description="Inactivity threshold in days")
    action: LifecycleAction = Field(LifecycleAction.NONE, description="Action applied to candidates")
    exclusion_group: Optional[str] = Field(None, description="Display name of the exclusion group")
    excluded_domains: List[str] = Field(default_factory=list)
    excluded_departments: List[str] = Field(default_factory=list)
    license_include_list: List[str] = Field(default_factory=list)
    target_group: Optional[str] = Field(None, description="Review group fully resynchronized each run")

    @property
    def is_member_stage(self) -> bool:
        return self.kind == AccountKind.MEMBER


class FilterCounts(BaseModel):
    """Per-step counts emitted by the filter pipeline."""
    retrieved: int = 0
    excluded_federated: int = 0
    excluded_by_creation: int = 0
    excluded_by_group: int = 0
    excluded_by_department: int = 0
    excluded_by_domain: int = 0
    excluded_by_license: int = 0
    still_active: int = 0
    candidates: int = 0


class ItemFailure(BaseModel):
    """A single failed per-item operation."""
    item_id: str
    principal_name: Optional[str] = None
    operation: str
    error: str


class ActuationResult(BaseModel):
    """Aggregate result of applying a lifecycle action."""
    action: LifecycleAction
    dry_run: bool
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: List[ItemFailure] = Field(default_factory=list)


class GroupSyncResult(BaseModel):
    """Aggregate result of a target group resynchronization."""
    group_name: str = ""
    group_id: Optional[str] = None
    created: bool = False
    skipped: bool = False
    dry_run: bool = False
    removed: int = 0
    added: int = 0
    failed_to_remove: int = 0
    failed_to_add: int = 0
    failures: List[ItemFailure] = Field(default_factory=list)


class AuditRecord(BaseModel):
    """Audit record for every mutation attempted (or intended) by a run."""
    id: str = Field(..., description="Unique audit record ID")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str
    stage: str
    action: str = Field(..., description="Action taken (disable, soft_delete, add_member, ...)")
    account_id: str
    principal_name: Optional[str] = None
    target: Optional[str] = Field(None, description="Target resource, e.g. a group id")
    dry_run: bool = False
    success: bool
    error_message: Optional[str] = None


class StageRunResult(BaseModel):
    """Structured summary of one stage invocation plus its candidates."""
    run_id: str
    stage: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = True
    dry_run: bool = False
    context: Optional[DirectoryContext] = None
    retrieval_strategy: Optional[str] = None
    counts: FilterCounts = Field(default_factory=FilterCounts)
    actuation: Optional[ActuationResult] = None
    group_sync: Optional[GroupSyncResult] = None
    warnings: List[str] = Field(default_factory=list)
    candidates: List[Candidate] = Field(default_factory=list)
    report_path: Optional[str] = None

    @property
    def error_count(self) -> int:
        errors = 0
        if self.actuation:
            errors += self.actuation.failed
        if self.group_sync:
            errors += self.group_sync.failed_to_remove + self.group_sync.failed_to_add
        return errors

"""
Base Connector Classes for the Inactivity Engine.

This module provides the directory connector contract consumed by the
filter pipeline and workflows, plus an in-memory mock directory used for
testing and offline runs.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set, Tuple

from ..models import Account, AccountFilter, DirectoryContext, Group, LicenseSku

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """A directory read operation failed."""


class DirectoryConnectionError(DirectoryError):
    """The directory connection or authentication could not be established."""


class ConnectorResult:
    """Result of a connector mutation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None):
        self.success = success
        self.message = message
        self.data = data
        self.error = error

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"


class BaseDirectoryConnector(ABC):
    """
    Abstract base class for directory connectors.

    Read operations raise DirectoryError on failure; mutations return a
    ConnectorResult. A connector is a scoped resource: use it as a context
    manager so the session is released whatever the outcome of the run.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        """
        Initialize the connector.

        Args:
            config: Configuration dictionary with credentials, endpoints, etc.
            mock_mode: If True, the connector is backed by an in-memory directory
        """
        self.config = config or {}
        self.mock_mode = mock_mode
        self.connected = False

        logger.info(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    def __enter__(self) -> "BaseDirectoryConnector":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def connect(self) -> None:
        """
        Establish the connection and authenticate.

        Raises:
            DirectoryConnectionError: If the connection cannot be established
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
        pass

    @abstractmethod
    def get_context(self) -> DirectoryContext:
        """Return tenant and identity metadata for the current connection."""
        pass

    @abstractmethod
    def list_accounts(self, account_filter: Optional[AccountFilter] = None) -> List[Account]:
        """
        List directory accounts.

        Args:
            account_filter: Structural filter evaluated server-side; None lists everything

        Returns:
            List of parsed accounts
        """
        pass

    @abstractmethod
    def get_group_by_name(self, name: str) -> Optional[Group]:
        """
        Look up a group by display name.

        Args:
            name: Group display name

        Returns:
            The group, or None if it does not exist
        """
        pass

    @abstractmethod
    def create_group(self, name: str) -> Group:
        """
        Create a security-enabled, mail-disabled group.

        Args:
            name: Group display name

        Returns:
            The created group
        """
        pass

    @abstractmethod
    def list_group_members(self, group_id: str) -> List[str]:
        """
        List the member object identifiers of a group.

        Args:
            group_id: Group identifier

        Returns:
            Member identifiers
        """
        pass

    @abstractmethod
    def add_group_member(self, group_id: str, member_id: str) -> ConnectorResult:
        """Add a member to a group."""
        pass

    @abstractmethod
    def remove_group_member(self, group_id: str, member_id: str) -> ConnectorResult:
        """Remove a member from a group."""
        pass

    @abstractmethod
    def set_account_enabled(self, account_id: str, enabled: bool) -> ConnectorResult:
        """Enable or disable an account."""
        pass

    @abstractmethod
    def remove_account(self, account_id: str) -> ConnectorResult:
        """
        Remove an account.

        The directory keeps removed accounts recoverable for its own
        grace period; this call does not enforce it.
        """
        pass

    @abstractmethod
    def list_license_catalog(self) -> List[LicenseSku]:
        """List the tenant's subscribed SKUs."""
        pass


class MockDirectoryConnector(BaseDirectoryConnector):
    """
    In-memory directory for testing and offline runs.

    Failure switches let tests exercise the degraded and per-item paths:
    ``fail_server_filter``, ``fail_listing``, ``fail_group_lookup``,
    ``fail_catalog``, ``fail_connect`` and ``failing_operations``, a set of
    ``(operation, object_id)`` pairs whose mutation should fail.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 accounts: Optional[List[Account]] = None,
                 groups: Optional[Dict[str, List[str]]] = None,
                 skus: Optional[List[LicenseSku]] = None,
                 tenant_id: str = "mock-tenant"):
        super().__init__(config, mock_mode=True)

        self.accounts: Dict[str, Account] = {a.id: a for a in accounts or []}
        self.groups: Dict[str, Group] = {}        # group_id -> Group
        self.members: Dict[str, List[str]] = {}   # group_id -> member ids
        self.skus: List[LicenseSku] = list(skus or [])
        self.tenant_id = tenant_id

        for name, member_ids in (groups or {}).items():
            group = self._new_group(name)
            self.members[group.id] = list(member_ids)

        self.fail_connect = False
        self.fail_server_filter = False
        self.fail_listing = False
        self.fail_group_lookup = False
        self.fail_catalog = False
        self.failing_operations: Set[Tuple[str, str]] = set()

        # Every mutation attempted, in order
        self.calls: List[Tuple[str, ...]] = []

    def _new_group(self, name: str) -> Group:
        group = Group(id=str(uuid.uuid4()), display_name=name)
        self.groups[group.id] = group
        self.members[group.id] = []
        return group

    def _should_fail(self, operation: str, object_id: str) -> bool:
        return (operation, object_id) in self.failing_operations

    def connect(self) -> None:
        if self.fail_connect:
            raise DirectoryConnectionError("Mock directory refused the connection")
        self.connected = True
        logger.info("Mock directory connected")

    def close(self) -> None:
        self.connected = False

    def get_context(self) -> DirectoryContext:
        return DirectoryContext(tenant_id=self.tenant_id, tenant_name="Mock Tenant", identity="mock-app")

    def list_accounts(self, account_filter: Optional[AccountFilter] = None) -> List[Account]:
        if self.fail_listing:
            raise DirectoryError("Mock directory listing failed")
        if account_filter is not None:
            if self.fail_server_filter:
                raise DirectoryError("Mock directory does not support server-side filtering")
            return [a for a in self.accounts.values() if account_filter.matches(a)]
        return list(self.accounts.values())

    def get_group_by_name(self, name: str) -> Optional[Group]:
        if self.fail_group_lookup:
            raise DirectoryError(f"Mock group lookup failed for '{name}'")
        for group in self.groups.values():
            if group.display_name == name:
                return group
        return None

    def create_group(self, name: str) -> Group:
        self.calls.append(("create_group", name))
        if self._should_fail("create_group", name):
            raise DirectoryError(f"Mock group creation failed for '{name}'")
        group = self._new_group(name)
        logger.info(f"Mock created group {name} ({group.id})")
        return group

    def list_group_members(self, group_id: str) -> List[str]:
        if group_id not in self.members:
            raise DirectoryError(f"Group {group_id} not found")
        return list(self.members[group_id])

    def add_group_member(self, group_id: str, member_id: str) -> ConnectorResult:
        self.calls.append(("add_group_member", group_id, member_id))
        if self._should_fail("add_group_member", member_id):
            return ConnectorResult(False, f"Failed to add {member_id}", error="simulated failure")
        if group_id not in self.members:
            return ConnectorResult(False, f"Group {group_id} not found", error="not found")

        if member_id not in self.members[group_id]:
            self.members[group_id].append(member_id)
        return ConnectorResult(True, f"Added {member_id} to {group_id}")

    def remove_group_member(self, group_id: str, member_id: str) -> ConnectorResult:
        self.calls.append(("remove_group_member", group_id, member_id))
        if self._should_fail("remove_group_member", member_id):
            return ConnectorResult(False, f"Failed to remove {member_id}", error="simulated failure")
        if group_id in self.members and member_id in self.members[group_id]:
            self.members[group_id].remove(member_id)
        return ConnectorResult(True, f"Removed {member_id} from {group_id}")

    def set_account_enabled(self, account_id: str, enabled: bool) -> ConnectorResult:
        self.calls.append(("set_account_enabled", account_id, str(enabled)))
        if self._should_fail("set_account_enabled", account_id):
            raise DirectoryError(f"Mock update failed for {account_id}")
        if account_id not in self.accounts:
            return ConnectorResult(False, f"Account {account_id} not found", error="not found")

        self.accounts[account_id] = self.accounts[account_id].model_copy(update={"enabled": enabled})
        logger.info(f"Mock set accountEnabled={enabled} for {account_id}")
        return ConnectorResult(True, f"Set enabled={enabled} for {account_id}")

    def remove_account(self, account_id: str) -> ConnectorResult:
        self.calls.append(("remove_account", account_id))
        if self._should_fail("remove_account", account_id):
            raise DirectoryError(f"Mock removal failed for {account_id}")
        if account_id not in self.accounts:
            return ConnectorResult(False, f"Account {account_id} not found", error="not found")

        del self.accounts[account_id]
        logger.info(f"Mock removed account {account_id}")
        return ConnectorResult(True, f"Removed {account_id}")

    def list_license_catalog(self) -> List[LicenseSku]:
        if self.fail_catalog:
            raise DirectoryError("Mock subscribed SKU listing failed")
        return list(self.skus)

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "MockDirectoryConnector":
        """
        Build a mock directory from a JSON snapshot.

        The snapshot holds Graph-shaped ``users``, a ``groups`` mapping of
        display name to member ids, and ``subscribedSkus``.
        """
        accounts = [Account.from_graph(user) for user in snapshot.get("users", [])]
        skus = [
            LicenseSku(sku_id=s["skuId"], sku_part_number=s.get("skuPartNumber"))
            for s in snapshot.get("subscribedSkus", [])
        ]
        return cls(
            accounts=accounts,
            groups=snapshot.get("groups", {}),
            skus=skus,
            tenant_id=snapshot.get("tenantId", "mock-tenant"),
        )
